"""Reshape a ``DocumentParsingResult`` into downloadable JSON / CSV payloads."""

from __future__ import annotations

import json
import math
import re
import time
from dataclasses import dataclass
from typing import Any

from app.services.ai.parser.contracts import DocumentParsingResult, ExtractedField, FieldType

CSV_HEADERS = ["Field Name", "Value", "Type", "Confidence", "Page"]
NO_DATA_MESSAGE = "No data extracted"

KEY_DATA_MIN_CONFIDENCE = 80
KEY_DATA_ALWAYS_CONFIDENCE = 95
PRIORITY_FIELDS = (
    "total",
    "amount",
    "total amount",
    "grand total",
    "date",
    "invoice date",
    "due date",
    "invoice number",
    "reference number",
    "id",
    "vendor",
    "company",
    "merchant",
    "from",
    "customer",
    "to",
    "bill to",
)
LINE_ITEM_MARKERS = ("line", "item", "product")
TABLE_INDICATORS = (
    "line item",
    "row",
    "column",
    "table",
    "list",
    "item",
    "product",
    "description",
    "quantity",
    "price",
    "amount",
)

_NUMBER_RE = re.compile(r"[\d,.]+")


@dataclass(frozen=True)
class FormattedData:
    format: str
    data: str
    filename: str
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data.encode("utf-8"))


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def _quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _num(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return _num(value)
    return str(value)


def _to_float(raw: str) -> float | None:
    try:
        parsed = float(raw)
    except ValueError:
        return None
    return None if math.isnan(parsed) else parsed


def format_field_value(field: ExtractedField) -> Any:
    if field.type == FieldType.NUMBER:
        parsed = _to_float(field.value.strip())
        return field.value if parsed is None else parsed
    if field.type == FieldType.CURRENCY:
        match = _NUMBER_RE.search(field.value)
        if match:
            parsed = _to_float(match.group(0).replace(",", ""))
            return field.value if parsed is None else parsed
    return field.value


def extract_key_data(fields: list[ExtractedField]) -> dict[str, Any]:
    key_data: dict[str, Any] = {}
    for field in fields:
        if field.confidence < KEY_DATA_MIN_CONFIDENCE:
            continue
        name = field.name.lower()
        is_priority = any(priority in name for priority in PRIORITY_FIELDS)
        if is_priority or field.confidence >= KEY_DATA_ALWAYS_CONFIDENCE:
            key_data[field.name] = format_field_value(field)
    return key_data


def group_fields_by_type(fields: list[ExtractedField]) -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = {}
    for field in fields:
        grouped.setdefault(field.type.value, []).append(field.model_dump(mode="json", exclude_none=True))
    return grouped


def extract_table_data(result: DocumentParsingResult) -> list[dict[str, Any]]:
    """First list-of-objects in ``structured_data``, else line-item fields as rows."""
    for value in result.structured_data.values():
        if isinstance(value, list) and value and isinstance(value[0], dict):
            return value

    line_items = [
        field
        for field in result.extracted_fields
        if any(marker in field.name.lower() for marker in LINE_ITEM_MARKERS)
    ]
    return [
        {"Item": field.value, "Type": field.type.value, "Confidence": field.confidence, "Row": idx}
        for idx, field in enumerate(line_items, start=1)
    ]


def detect_table_structure(result: DocumentParsingResult) -> dict[str, Any]:
    fields = result.extracted_fields
    tabular = [
        field
        for field in fields
        if any(indicator in field.name.lower() for indicator in TABLE_INDICATORS)
    ]
    is_tabular = len(tabular) >= 3
    confidence = (len(tabular) / len(fields) * 100) if fields else 0.0
    return {
        "is_tabular": is_tabular,
        "row_count": math.ceil(len(tabular) / 3),
        "column_count": 3 if is_tabular else 1,
        "confidence": min(confidence, 100.0),
    }


class DataFormatter:
    def to_json(self, result: DocumentParsingResult, pretty: bool = True) -> FormattedData:
        payload = result.model_dump(mode="json", exclude_none=True)
        data = json.dumps(payload, indent=2 if pretty else None, ensure_ascii=False)
        return FormattedData(
            format="json",
            data=data,
            filename=f"extracted_data_{_timestamp_ms()}.json",
            mime_type="application/json",
        )

    def to_csv(self, result: DocumentParsingResult) -> FormattedData:
        filename = f"extracted_data_{_timestamp_ms()}.csv"
        if not result.extracted_fields:
            return FormattedData(format="csv", data=NO_DATA_MESSAGE, filename=filename, mime_type="text/csv")

        lines = [",".join(CSV_HEADERS)]
        for field in result.extracted_fields:
            page = field.position.page if field.position and field.position.page else 1
            lines.append(
                ",".join(
                    [
                        _quote(field.name),
                        _quote(field.value),
                        _quote(field.type.value),
                        _num(field.confidence),
                        str(page),
                    ]
                )
            )
        return FormattedData(format="csv", data="\n".join(lines), filename=filename, mime_type="text/csv")

    def to_structured(self, result: DocumentParsingResult) -> FormattedData:
        structured = {
            "document_info": {
                "type": result.document_type.value,
                "summary": result.summary,
                "confidence": result.confidence,
                "processing_metadata": result.metadata.model_dump() if result.metadata else None,
            },
            "key_data": extract_key_data(result.extracted_fields),
            "all_fields": group_fields_by_type(result.extracted_fields),
            "structured_data": result.structured_data,
        }
        return FormattedData(
            format="structured",
            data=json.dumps(structured, indent=2, ensure_ascii=False, default=str),
            filename=f"structured_data_{_timestamp_ms()}.json",
            mime_type="application/json",
        )

    def to_table(self, result: DocumentParsingResult) -> FormattedData:
        rows = extract_table_data(result)
        if not rows:
            return self.to_csv(result)

        headers = list(rows[0].keys())
        lines = [",".join(_quote(str(h)) for h in headers)]
        for row in rows:
            lines.append(",".join(_quote(_cell(row.get(header))) for header in headers))
        return FormattedData(
            format="csv",
            data="\n".join(lines),
            filename=f"table_data_{_timestamp_ms()}.csv",
            mime_type="text/csv",
        )

    def auto_format(self, result: DocumentParsingResult) -> FormattedData:
        if len(extract_table_data(result)) > 1:
            return self.to_table(result)
        if len(result.extracted_fields) > 10:
            return self.to_csv(result)
        return self.to_structured(result)


data_formatter = DataFormatter()
