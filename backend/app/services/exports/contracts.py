"""Export contracts: AI-designed export shapes plus request/result types."""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

ExportFormat = Literal["json", "csv", "excel"]
EXPORT_FORMATS: tuple[str, ...] = ("json", "csv", "excel")

CellValue = Union[str, int, float, bool, None]


def _stringify_rows(value: Any) -> Any:
    if not isinstance(value, list):
        return value
    return [
        ["" if cell is None else str(cell) for cell in row] if isinstance(row, list) else row
        for row in value
    ]


# --- Shapes the model fills ---


class CSVExportMetadata(BaseModel):
    total_records: int
    export_date: str
    columns: int


class CSVExport(BaseModel):
    headers: list[str] = Field(..., description="Column headers for the CSV file")
    rows: list[list[str]] = Field(
        ..., description="Data rows with values corresponding to headers"
    )
    metadata: CSVExportMetadata

    @field_validator("rows", mode="before")
    @classmethod
    def _coerce_rows(cls, value):
        return _stringify_rows(value)


class JSONExportDocumentMetadata(BaseModel):
    confidence: Optional[float] = None
    processing_date: Optional[str] = None
    pages: Optional[int] = None


class JSONExportDocument(BaseModel):
    id: str
    name: str
    type: str
    extracted_data: dict[str, Any]
    metadata: JSONExportDocumentMetadata = Field(default_factory=JSONExportDocumentMetadata)


class JSONExportSummary(BaseModel):
    total_documents: int
    document_types: dict[str, int]
    average_confidence: float
    export_date: str


class JSONExport(BaseModel):
    documents: list[JSONExportDocument]
    summary: JSONExportSummary


class ExcelSheetMetadata(BaseModel):
    total_rows: int
    columns: int


class ExcelSheet(BaseModel):
    name: str
    headers: list[str]
    rows: list[list[CellValue]]
    metadata: Optional[ExcelSheetMetadata] = None


class ExcelExportMetadata(BaseModel):
    total_sheets: int
    export_date: str
    creator: Optional[str] = None


class ExcelExport(BaseModel):
    sheets: list[ExcelSheet]
    metadata: ExcelExportMetadata


# --- Exporter input / output ---


class ExportField(BaseModel):
    name: str
    value: str
    confidence: float
    type: str


class DocumentExportMetadata(BaseModel):
    confidence: Optional[float] = None
    processing_date: Optional[str] = None
    pages: Optional[int] = None
    template: Optional[str] = None


class DocumentExportData(BaseModel):
    id: str
    name: str
    type: str
    status: str
    extracted_fields: list[ExportField] = Field(default_factory=list)
    metadata: DocumentExportMetadata = Field(default_factory=DocumentExportMetadata)


class DateRange(BaseModel):
    start: str
    end: str


class ExportFilters(BaseModel):
    document_type: Optional[str] = None
    confidence_threshold: Optional[float] = None
    date_range: Optional[DateRange] = None


class CustomField(BaseModel):
    name: str
    description: str


class ExportSettings(BaseModel):
    group_by_type: Optional[bool] = None
    include_metadata: Optional[bool] = None
    custom_fields: Optional[list[CustomField]] = None


class ExportRequest(BaseModel):
    user_id: str
    name: str
    description: Optional[str] = None
    format: ExportFormat
    documents: list[DocumentExportData]
    filters: Optional[ExportFilters] = None
    include_fields: Optional[list[str]] = None
    settings: Optional[ExportSettings] = None


class ExportResult(BaseModel):
    success: bool
    file_path: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    records_count: Optional[int] = None
    error: Optional[str] = None
