"""Mock provider: deterministic responses for tests and offline runs."""

from __future__ import annotations

import json
import time
from typing import Any, Sequence

from .base import BaseProvider, ImageInput, ProviderResult

MOCK_EXPORT_DATE = "2024-01-01T00:00:00Z"

# Canned payloads keyed by the JSON-schema title embedded in the prompt.
CANNED_RESPONSES: dict[str, dict[str, Any]] = {
    "DocumentParsingResult": {
        "summary": "Invoice INV-0001 from Acme Supplies for $1,250.00",
        "document_type": "invoice",
        "confidence": 88,
        "extracted_fields": [
            {"name": "Invoice Number", "value": "INV-0001", "confidence": 96, "type": "text"},
            {"name": "Invoice Date", "value": "2024-01-15", "confidence": 91, "type": "date"},
            {"name": "Vendor Name", "value": "Acme Supplies", "confidence": 85, "type": "text"},
            {"name": "Total Amount", "value": "$1,250.00", "confidence": 93, "type": "currency"},
        ],
        "structured_data": {
            "invoice_number": "INV-0001",
            "vendor": "Acme Supplies",
            "total": 1250.0,
            "currency": "USD",
        },
    },
    "CSVExport": {
        "headers": ["Field Name", "Value", "Confidence"],
        "rows": [
            ["Invoice Number", "INV-0001", "96"],
            ["Total Amount", "1250.00", "93"],
        ],
        "metadata": {"total_records": 2, "export_date": MOCK_EXPORT_DATE, "columns": 3},
    },
    "JSONExport": {
        "documents": [
            {
                "id": "mock-document",
                "name": "invoice.pdf",
                "type": "invoice",
                "extracted_data": {"invoice_number": "INV-0001", "total": 1250.0},
                "metadata": {"confidence": 88, "processing_date": MOCK_EXPORT_DATE, "pages": 1},
            }
        ],
        "summary": {
            "total_documents": 1,
            "document_types": {"invoice": 1},
            "average_confidence": 88,
            "export_date": MOCK_EXPORT_DATE,
        },
    },
    "ExcelExport": {
        "sheets": [
            {
                "name": "Invoices",
                "headers": ["Field", "Value"],
                "rows": [["Invoice Number", "INV-0001"], ["Total Amount", 1250.0]],
                "metadata": {"total_rows": 2, "columns": 2},
            }
        ],
        "metadata": {"total_sheets": 1, "export_date": MOCK_EXPORT_DATE, "creator": "FinExtract"},
    },
}


def _canned_for(prompt: str) -> dict[str, Any]:
    for title, payload in CANNED_RESPONSES.items():
        if f'"title": "{title}"' in prompt:
            return payload
    return {}


class MockProvider(BaseProvider):
    name = "mock"
    supports_vision = True

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        images: Sequence[ImageInput] = (),
        model: str = "",
        temperature: float = 0.1,
        max_tokens: int = 4096,
        timeout_seconds: float = 60.0,
        json_mode: bool = False,
    ) -> ProviderResult:
        t0 = time.monotonic()
        text = json.dumps(_canned_for(prompt))
        elapsed = (time.monotonic() - t0) * 1000
        return ProviderResult(
            raw_text=text,
            model=model or "mock-v1",
            provider=self.name,
            prompt_tokens=len(prompt.split()),
            completion_tokens=len(text.split()),
            latency_ms=round(elapsed, 2),
        )
