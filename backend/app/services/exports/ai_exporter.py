"""AI-designed exports: the model shapes the data, we serialise and store it."""

from __future__ import annotations

import io
import json
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Type

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.storage import create_signed_url, upload_object, user_file_path
from app.services.ai.common.audit import EXPORT_SCOPE, log_ai_run
from app.services.ai.common.structured import generate_object

from .contracts import CSVExport, ExcelExport, ExportRequest, ExportResult, JSONExport

logger = logging.getLogger(__name__)

EXPORT_TEMPERATURE = 0.1

CONTENT_TYPES: dict[str, str] = {
    "json": "application/json",
    "csv": "text/csv",
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
EXTENSIONS: dict[str, str] = {"json": "json", "csv": "csv", "excel": "xlsx"}

_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9]")
_SHEET_FORBIDDEN_RE = re.compile(r"[\[\]:*?/\\]")
_MAX_SHEET_NAME = 31

_HEADER_FONT = Font(bold=True, color="FFFFFF")
_HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
_HEADER_ALIGNMENT = Alignment(horizontal="center", vertical="center")


def export_file_name(name: str, fmt: str, *, timestamp_ms: int | None = None) -> str:
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"{_UNSAFE_NAME_RE.sub('_', name)}_{stamp}.{EXTENSIONS[fmt]}"


def _documents_json(request: ExportRequest) -> str:
    return json.dumps([doc.model_dump(exclude_none=True) for doc in request.documents], indent=2)


def _filters_json(request: ExportRequest) -> str:
    return json.dumps(request.filters.model_dump(exclude_none=True) if request.filters else {})


def _settings_json(request: ExportRequest) -> str:
    return json.dumps(request.settings.model_dump(exclude_none=True) if request.settings else {})


def generate_json_prompt(request: ExportRequest) -> str:
    return f"""You are an expert data export specialist. Create a structured JSON export from the following document data.

EXPORT REQUEST:
- Name: {request.name}
- Format: JSON
- Documents: {len(request.documents)}
- Filters: {_filters_json(request)}
- Settings: {_settings_json(request)}

DOCUMENT DATA:
{_documents_json(request)}

REQUIREMENTS:
1. Create a comprehensive JSON structure with documents and summary
2. Include all extracted fields and metadata for each document
3. Calculate summary statistics (total documents, document types distribution, average confidence)
4. Group documents by type if requested in settings
5. Apply confidence threshold filtering if specified
6. Include only specified fields if include_fields is provided
7. Add export metadata (date, total records, etc.)

OUTPUT STRUCTURE:
- documents: Array of processed document objects with extracted data
- summary: Export summary with statistics and metadata

Ensure the JSON is well-structured, complete, and optimized for data analysis and reporting."""


def generate_csv_prompt(request: ExportRequest) -> str:
    return f"""You are an expert data export specialist. Create a structured CSV export from the following document data.

EXPORT REQUEST:
- Name: {request.name}
- Format: CSV
- Documents: {len(request.documents)}
- Filters: {_filters_json(request)}
- Include Fields: {json.dumps(request.include_fields or [])}

DOCUMENT DATA:
{_documents_json(request)}

REQUIREMENTS:
1. Design optimal CSV headers that capture all important data points
2. Create data rows with consistent formatting
3. Include document metadata (name, type, confidence, processing date)
4. Flatten extracted fields into individual columns
5. Apply filters (document type, confidence threshold, date range)
6. Include only specified fields if include_fields is provided
7. Ensure data is clean and CSV-compatible (escape commas, quotes)
8. Add metadata about the export (total records, export date, columns)

CSV DESIGN GUIDELINES:
- Use clear, descriptive column headers
- Maintain consistent data formatting across rows
- Handle missing values appropriately (empty or "N/A")
- Ensure all data is properly escaped for CSV format
- Group related fields logically in column order

Output the CSV structure with headers and data rows that are ready for spreadsheet import and data analysis."""


def generate_excel_prompt(request: ExportRequest) -> str:
    return f"""You are an expert data export specialist. Create a structured Excel workbook export from the following document data.

EXPORT REQUEST:
- Name: {request.name}
- Format: Excel (XLSX)
- Documents: {len(request.documents)}
- Settings: {_settings_json(request)}

DOCUMENT DATA:
{_documents_json(request)}

REQUIREMENTS:
1. Design multiple worksheet structure for comprehensive data organization
2. Create worksheets for: Documents, Summary, Field Analysis, Document Types
3. Include proper headers and data formatting for each sheet
4. Apply grouping by document type if requested
5. Include metadata and statistics sheets
6. Ensure data is optimized for Excel analysis (proper data types, formatting)

WORKSHEET DESIGN:
1. "Documents" sheet: Main data with all document information
2. "Summary" sheet: Statistics and overview data
3. "Field Analysis" sheet: Analysis of extracted fields across documents
4. "Document Types" sheet: Breakdown by document categories

EXCEL FEATURES TO LEVERAGE:
- Multiple worksheets for data organization
- Proper column headers and data types
- Statistical summaries and counts
- Data suitable for pivot tables and analysis

Output the Excel structure with multiple sheets, headers, and data rows optimized for business analysis and reporting."""


_FORMAT_PLANS: dict[str, tuple[Type[BaseModel], Any]] = {
    "json": (JSONExport, generate_json_prompt),
    "csv": (CSVExport, generate_csv_prompt),
    "excel": (ExcelExport, generate_excel_prompt),
}


def escape_csv(value: str) -> str:
    if "," in value or '"' in value or "\n" in value:
        return '"' + value.replace('"', '""') + '"'
    return value


def csv_bytes(data: CSVExport) -> bytes:
    lines = [",".join(escape_csv(h) for h in data.headers)]
    lines.extend(",".join(escape_csv(cell) for cell in row) for row in data.rows)
    return "\n".join(lines).encode("utf-8")


def json_bytes(data: JSONExport) -> bytes:
    return json.dumps(data.model_dump(), indent=2, ensure_ascii=False).encode("utf-8")


def _cell_text(value: Any) -> Any:
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


def _write_cell(sheet, row: int, column: int, value: Any):
    """Write *value* as data; strings are never stored as formulas."""
    value = _cell_text(value)
    cell = sheet.cell(row=row, column=column, value=value)
    if isinstance(value, str):
        cell.data_type = "s"
    return cell


def _sheet_title(raw: str, taken: set[str]) -> str:
    base = _SHEET_FORBIDDEN_RE.sub("_", _cell_text(raw)).strip() or "Sheet"
    base = base[:_MAX_SHEET_NAME]
    title = base
    counter = 2
    while title.lower() in taken:
        suffix = f" ({counter})"
        title = base[: _MAX_SHEET_NAME - len(suffix)] + suffix
        counter += 1
    taken.add(title.lower())
    return title


def xlsx_bytes(data: ExcelExport) -> bytes:
    """One worksheet per AI-designed sheet; bold header row, frozen panes."""
    workbook = Workbook()
    workbook.remove(workbook.active)
    taken: set[str] = set()

    sheets = data.sheets or []
    if not sheets:
        workbook.create_sheet(title="Export")

    for sheet_data in sheets:
        sheet = workbook.create_sheet(title=_sheet_title(sheet_data.name, taken))
        for col, header in enumerate(sheet_data.headers, 1):
            cell = _write_cell(sheet, 1, col, header)
            cell.font = _HEADER_FONT
            cell.fill = _HEADER_FILL
            cell.alignment = _HEADER_ALIGNMENT
        for row_idx, row in enumerate(sheet_data.rows, 2):
            for col, value in enumerate(row, 1):
                _write_cell(sheet, row_idx, col, value)

        for col, header in enumerate(sheet_data.headers, 1):
            values = [header] + [row[col - 1] for row in sheet_data.rows if len(row) >= col]
            width = max((len(str(v)) for v in values if v is not None), default=8)
            sheet.column_dimensions[get_column_letter(col)].width = min(width + 2, 60)
        sheet.freeze_panes = "A2"

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def to_file_content(data: BaseModel, fmt: str) -> bytes:
    if fmt == "json":
        return json_bytes(data)
    if fmt == "csv":
        return csv_bytes(data)
    if fmt == "excel":
        return xlsx_bytes(data)
    raise ValueError(f"Unsupported format for conversion: {fmt}")


class AIExporter:
    async def generate_export(
        self,
        request: ExportRequest,
        *,
        db: Session | None = None,
    ) -> ExportResult:
        """Build, upload and sign an export. Failures come back as ``success=False``."""
        t0 = time.monotonic()
        settings = get_settings()
        logger.info(
            "Starting AI export generation: %s format, %d documents",
            request.format,
            len(request.documents),
        )

        try:
            schema, build_prompt = _FORMAT_PLANS[request.format]
            run = await generate_object(schema, build_prompt(request), temperature=EXPORT_TEMPERATURE)
            content = to_file_content(run.object, request.format)

            file_name = export_file_name(request.name, request.format)
            file_path = user_file_path(request.user_id, file_name)
            upload_object(
                settings.storage_exports_bucket,
                file_path,
                content,
                CONTENT_TYPES[request.format],
            )
            file_url = create_signed_url(
                settings.storage_exports_bucket, file_path, settings.export_url_ttl_seconds
            )
        except Exception as exc:
            logger.exception("Export generation failed")
            return ExportResult(success=False, error=str(exc) or "Unknown error occurred")

        logger.info(
            "Export generated in %.0fms: %s (%d bytes)",
            (time.monotonic() - t0) * 1000,
            file_name,
            len(content),
        )

        if db is not None:
            log_ai_run(
                db,
                scope=EXPORT_SCOPE,
                run=run,
                summary={"format": request.format, "file_name": file_name},
                actor_id=request.user_id,
                extra_meta={
                    "documents": [doc.id for doc in request.documents],
                    "created_at": datetime.now(timezone.utc).isoformat(),
                },
            )

        return ExportResult(
            success=True,
            file_path=file_path,
            file_url=file_url,
            file_name=file_name,
            file_size=len(content),
            records_count=len(request.documents),
        )


ai_exporter = AIExporter()
