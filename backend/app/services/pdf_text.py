"""PDF text extraction for LLM input (pdfplumber)."""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import pdfplumber

from app.core.errors import PDFParseError

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]\s+")

_INFO_KEYS = {
    "title": "Title",
    "author": "Author",
    "subject": "Subject",
    "creator": "Creator",
    "producer": "Producer",
    "creation_date": "CreationDate",
    "mod_date": "ModDate",
}


@dataclass
class PDFParseResult:
    text: str
    num_pages: int
    info: dict[str, Optional[str]] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def parse_pdf(data: bytes) -> PDFParseResult:
    """Extract the text of every page, plus the document info dictionary."""
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
            raw_meta = dict(pdf.metadata or {})
    except Exception as exc:
        logger.warning("PDF parsing failed: %s", exc)
        raise PDFParseError(f"Failed to parse PDF: {exc}") from exc

    text = "\n".join(pages)
    info = {key: _as_text(raw_meta.get(src)) for key, src in _INFO_KEYS.items()}
    logger.info("PDF parsed: %d pages, %d characters", len(pages), len(text))
    return PDFParseResult(
        text=text,
        num_pages=len(pages),
        info=info,
        metadata={k: _as_text(v) for k, v in raw_meta.items()},
    )


async def parse_pdf_from_url(url: str, *, timeout_seconds: float = 30.0) -> PDFParseResult:
    async with httpx.AsyncClient(timeout=timeout_seconds, follow_redirects=True) as client:
        try:
            resp = await client.get(url)
        except httpx.HTTPError as exc:
            raise PDFParseError(f"Failed to fetch PDF: {exc}") from exc
    if resp.status_code >= 400:
        raise PDFParseError(f"Failed to fetch PDF: {resp.status_code} {resp.reason_phrase}")
    return parse_pdf(resp.content)


def clean_extracted_text(text: str) -> str:
    """Collapse whitespace runs (page breaks included) to single spaces."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def chunk_text(text: str, max_chunk_size: int = 4000) -> list[str]:
    """Greedy sentence packing; every chunk ends with a period."""
    chunks: list[str] = []
    current = ""
    for sentence in _SENTENCE_SPLIT_RE.split(text):
        candidate = f"{current}. {sentence}" if current else sentence
        if len(candidate) <= max_chunk_size:
            current = candidate
            continue
        if current:
            chunks.append(current + ".")
        current = sentence
    if current:
        chunks.append(current + ".")
    return chunks
