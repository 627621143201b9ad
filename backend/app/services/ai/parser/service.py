"""Document parser: template-driven prompt, schema-constrained extraction."""

from __future__ import annotations

import json
import logging
import math
import time
from typing import Optional

from sqlalchemy.orm import Session

from app.core.errors import AIConfigError, FinExtractError, ProviderCapabilityError
from app.services.pdf_text import clean_extracted_text, parse_pdf

from ..common.audit import PARSE_SCOPE, log_ai_run
from ..common.catalogue import get_ai_config
from ..common.providers.base import ImageInput
from ..common.structured import StructuredResult, generate_object
from .contracts import (
    DEFAULT_TEMPLATE,
    DocumentParsingResult,
    DocumentTemplate,
    DocumentType,
    ParsingMetadata,
)

logger = logging.getLogger(__name__)

PARSE_TEMPERATURE = 0.1
WORDS_PER_PAGE = 500
FALLBACK_SUMMARY = "Failed to parse document due to AI service error"

TEMPLATE_INSTRUCTIONS = """INSTRUCTIONS:
1. Carefully analyze the document and extract ALL requested fields
2. For each field, provide a confidence score (0-100) based on how certain you are
3. If a field is not found, still include it with an empty value and confidence 0
4. For currency fields, extract the numeric value and currency symbol/code
5. For dates, use ISO format (YYYY-MM-DD) when possible
6. For addresses, include the complete address as a single string
7. Detect and classify the document type accurately
8. Include any additional relevant data in the structured_data object
9. Focus on extracting numbers, amounts, dates, and key identifiers
10. If this looks like tabular data, structure it appropriately"""

DEFAULT_INSTRUCTIONS = """INSTRUCTIONS:
1. Identify the document type (invoice, receipt, contract, etc.)
2. Extract ALL key information including:
   - Names, organizations, and people
   - Dates (in ISO format YYYY-MM-DD when possible)
   - Numbers, amounts, and currencies
   - Addresses, emails, and phone numbers
   - Reference numbers, IDs, and codes
   - Any tabular data or line items
3. For each extracted field, provide a confidence score (0-100)
4. Structure tabular data as arrays or objects when appropriate
5. Focus on extracting actionable business data
6. If the document contains financial data, prioritize amounts and totals
7. For receipts/invoices, extract line items if present"""


def _field_line(field) -> str:
    required = ", required" if field.required else ""
    description = field.description or "Extract this field if present"
    return f"- {field.name} ({field.type}{required}): {description}"


def generate_prompt(template: DocumentTemplate, document_text: str) -> str:
    field_descriptions = "\n".join(_field_line(f) for f in template.fields)
    return (
        "You are an expert document parsing AI. "
        "Extract structured data from the following document text.\n\n"
        f"DOCUMENT TYPE: {template.document_type}\n"
        f"TEMPLATE: {template.name}\n\n"
        f"REQUIRED FIELDS TO EXTRACT:\n{field_descriptions}\n\n"
        f"DOCUMENT TEXT:\n{document_text}\n\n"
        f"{TEMPLATE_INSTRUCTIONS}\n\n"
        "Return the extracted data in the specified JSON schema format."
    )


def generate_default_prompt(document_text: str) -> str:
    return (
        "You are an expert document parsing AI. "
        "Extract all relevant structured data from this document.\n\n"
        f"DOCUMENT TEXT:\n{document_text}\n\n"
        f"{DEFAULT_INSTRUCTIONS}\n\n"
        "Provide comprehensive extraction with high accuracy and appropriate confidence scores."
    )


def generate_image_prompt(template: Optional[DocumentTemplate]) -> str:
    if template is None:
        return "Extract all structured data from this document image"
    fields = json.dumps([f.model_dump(exclude_none=True) for f in template.fields], indent=2)
    return f"Extract data according to this template for {template.document_type}: {fields}"


def estimate_page_count(text: str) -> int:
    """Rough estimate at ~500 words per page."""
    words = len(text.split())
    return max(1, math.ceil(words / WORDS_PER_PAGE))


def is_image_type(content_type: Optional[str]) -> bool:
    return bool(content_type) and content_type.lower().startswith("image/")


def is_pdf(content_type: Optional[str], filename: Optional[str]) -> bool:
    if content_type and content_type.lower() == "application/pdf":
        return True
    return bool(filename) and filename.lower().endswith(".pdf")


class DocumentParser:
    """Parses documents into ``DocumentParsingResult`` via the configured model.

    ``parse_document`` never raises: AI failures produce a zero-confidence
    fallback. ``parse_document_with_file`` propagates capability and vision
    errors so the caller can mark the document as failed.
    """

    async def parse_document(
        self,
        document_text: str,
        template: Optional[DocumentTemplate] = None,
        *,
        db: Session | None = None,
        actor_id: str | None = None,
    ) -> DocumentParsingResult:
        t0 = time.monotonic()
        prompt = (
            generate_prompt(template, document_text)
            if template
            else generate_default_prompt(document_text)
        )

        try:
            config = get_ai_config()
            logger.info(
                "Starting AI parsing with %s/%s (%d characters, template=%s)",
                config.provider,
                config.model,
                len(document_text),
                template.id if template else "none",
            )
            run = await generate_object(
                DocumentParsingResult, prompt, temperature=PARSE_TEMPERATURE, config=config
            )
        except FinExtractError:
            logger.exception("Document parsing failed")
            return self._fallback(t0)

        elapsed_ms = round((time.monotonic() - t0) * 1000)
        result = run.object.model_copy(
            update={
                "metadata": ParsingMetadata(
                    pages=estimate_page_count(document_text),
                    processing_time=elapsed_ms,
                    provider=run.config.provider,
                    model=run.config.model,
                )
            }
        )
        logger.info(
            "Parsing completed in %dms: %d fields, confidence %.0f%%",
            elapsed_ms,
            len(result.extracted_fields),
            result.confidence,
        )
        self._audit(db, run, result, actor_id, template, mode="text")
        return result

    async def parse_document_with_file(
        self,
        content: bytes,
        *,
        filename: Optional[str],
        content_type: Optional[str],
        template: Optional[DocumentTemplate] = None,
        db: Session | None = None,
        actor_id: str | None = None,
    ) -> DocumentParsingResult:
        config = get_ai_config()

        if is_image_type(content_type):
            if not config.supports_vision:
                raise ProviderCapabilityError(
                    f"Provider {config.provider} does not support image processing. "
                    "Please use OpenAI or Google."
                )
            return await self._parse_image(
                content, content_type or "image/png", template, db=db, actor_id=actor_id
            )

        text = self.extract_text(content, filename=filename, content_type=content_type)
        return await self.parse_document(text, template, db=db, actor_id=actor_id)

    def extract_text(
        self, content: bytes, *, filename: Optional[str], content_type: Optional[str]
    ) -> str:
        if is_pdf(content_type, filename):
            return clean_extracted_text(parse_pdf(content).text)
        return content.decode("utf-8", errors="replace")

    async def _parse_image(
        self,
        content: bytes,
        content_type: str,
        template: Optional[DocumentTemplate],
        *,
        db: Session | None,
        actor_id: str | None,
    ) -> DocumentParsingResult:
        t0 = time.monotonic()
        prompt = generate_image_prompt(template)
        run = await generate_object(
            DocumentParsingResult,
            prompt,
            images=[ImageInput(mime_type=content_type, data=content)],
            temperature=PARSE_TEMPERATURE,
        )
        result = run.object.model_copy(
            update={
                "metadata": ParsingMetadata(
                    pages=1,
                    processing_time=round((time.monotonic() - t0) * 1000),
                    provider=run.config.provider,
                    model=run.config.model,
                )
            }
        )
        self._audit(db, run, result, actor_id, template, mode="image")
        return result

    def _fallback(self, t0: float) -> DocumentParsingResult:
        try:
            config = get_ai_config()
            provider, model = config.provider, config.model
        except AIConfigError:
            provider, model = "unknown", "unknown"
        return DocumentParsingResult(
            summary=FALLBACK_SUMMARY,
            document_type=DocumentType.OTHER,
            confidence=0,
            extracted_fields=[],
            structured_data={},
            metadata=ParsingMetadata(
                pages=1,
                processing_time=round((time.monotonic() - t0) * 1000),
                provider=provider,
                model=model,
            ),
        )

    @staticmethod
    def _audit(
        db: Session | None,
        run: StructuredResult,
        result: DocumentParsingResult,
        actor_id: str | None,
        template: Optional[DocumentTemplate],
        *,
        mode: str,
    ) -> None:
        if db is None:
            return
        log_ai_run(
            db,
            scope=PARSE_SCOPE,
            run=run,
            summary={
                "document_type": result.document_type.value,
                "confidence": result.confidence,
                "fields": len(result.extracted_fields),
            },
            actor_id=actor_id,
            extra_meta={
                "mode": mode,
                "template_id": template.id if template else None,
            },
        )


document_parser = DocumentParser()
