"""Document parsing contracts: schema the model must fill, plus templates."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class FieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    CURRENCY = "currency"
    ADDRESS = "address"
    EMAIL = "email"
    PHONE = "phone"


class DocumentType(str, Enum):
    INVOICE = "invoice"
    RECEIPT = "receipt"
    BANK_STATEMENT = "bank-statement"
    TAX_FORM = "tax-form"
    CONTRACT = "contract"
    EXPENSE_REPORT = "expense-report"
    OTHER = "other"


class Coordinates(BaseModel):
    x: float
    y: float
    width: float
    height: float


class FieldPosition(BaseModel):
    page: Optional[int] = Field(default=None, description="Page number where found")
    coordinates: Optional[Coordinates] = Field(
        default=None, description="Bounding box coordinates if available"
    )


class ExtractedField(BaseModel):
    name: str = Field(..., description="The name/label of the field")
    value: str = Field(..., description="The extracted value as a string")
    confidence: float = Field(..., ge=0, le=100, description="Confidence score from 0-100")
    type: FieldType = Field(..., description="The data type of the field")
    position: Optional[FieldPosition] = None


class ParsingMetadata(BaseModel):
    pages: int = Field(..., description="Number of pages processed")
    processing_time: float = Field(..., description="Processing time in milliseconds")
    provider: str = Field(..., description="AI provider used")
    model: str = Field(..., description="AI model used")


class DocumentParsingResult(BaseModel):
    summary: str = Field(..., description="Brief summary of the document content and type")
    document_type: DocumentType = Field(..., description="Detected document type")
    confidence: float = Field(..., ge=0, le=100, description="Overall confidence in the extraction")
    extracted_fields: list[ExtractedField] = Field(
        ..., description="All extracted fields from the document"
    )
    structured_data: dict[str, Any] = Field(
        ..., description="Key-value pairs of the most important data"
    )
    metadata: Optional[ParsingMetadata] = None


class TemplateField(BaseModel):
    name: str
    type: str
    required: bool = False
    description: Optional[str] = None


class TemplateSettings(BaseModel):
    confidence_threshold: float = 70
    auto_approve: bool = False


class DocumentTemplate(BaseModel):
    id: str
    name: str
    document_type: str
    fields: list[TemplateField]
    settings: TemplateSettings = Field(default_factory=TemplateSettings)


DEFAULT_TEMPLATE = DocumentTemplate(
    id="default",
    name="Default Document Parser",
    document_type="other",
    fields=[
        TemplateField(name="Document Title", type="text", description="Main title or header of the document"),
        TemplateField(name="Date", type="date", description="Any date mentioned in the document"),
        TemplateField(name="Amount", type="currency", description="Any monetary amount found"),
        TemplateField(name="Organization", type="text", description="Company or organization name"),
        TemplateField(name="Contact Info", type="text", description="Phone, email, or address"),
        TemplateField(
            name="Reference Number", type="text", description="Any reference, ID, or tracking number"
        ),
    ],
    settings=TemplateSettings(confidence_threshold=70, auto_approve=False),
)
