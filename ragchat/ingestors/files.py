"""Ingestors for uploaded files and pasted text."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, ClassVar

import docx
import pandas as pd
import pypdf
from docx.table import Table

from ragchat.config import config
from ragchat.errors import IngestionError, InputValidationError
from ragchat.models import SourceInput, SourceType

from .base import ExtractedUnit, FileIngestor

logger = config.get_logger(__name__)

TEXT_INPUT_SOURCE = "text-input"


class PDFIngestor(FileIngestor):
    """One record per non-blank PDF page."""

    source_type = SourceType.PDF
    allowed_mime_types = frozenset({"application/pdf"})
    default_suffix = ".pdf"

    def parse_file(self, path: Path) -> list[ExtractedUnit]:
        units: list[ExtractedUnit] = []
        with path.open("rb") as file:
            pdf_reader = pypdf.PdfReader(file)
            for page_num, page in enumerate(pdf_reader.pages, start=1):
                page_text = page.extract_text() or ""
                if not page_text.strip():
                    logger.warning("Skipping blank PDF page %d", page_num)
                    continue
                units.append((page_text, {"page": page_num}))
        return units


def table_to_markdown(table: Table) -> str:
    """Render a DOCX table as Markdown rows with a header separator.

    Returns:
        Markdown table text, empty for a table without rows.
    """
    lines = []
    for row_idx, row in enumerate(table.rows):
        cells = [cell.text.strip().replace("\n", " ") for cell in row.cells]
        lines.append("| " + " | ".join(cells) + " |")
        if row_idx == 0:
            lines.append("|" + "---|" * len(cells))
    return "\n".join(lines)


class DocxIngestor(FileIngestor):
    """Whole DOCX document as one record, tables rendered as Markdown."""

    source_type = SourceType.DOCX
    allowed_mime_types = frozenset(
        {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}
    )
    default_suffix = ".docx"

    def parse_file(self, path: Path) -> list[ExtractedUnit]:
        document = docx.Document(str(path))

        blocks = []
        for block in document.iter_inner_content():
            if isinstance(block, Table):
                rendered = table_to_markdown(block)
            else:
                rendered = block.text
            if rendered.strip():
                blocks.append(rendered)

        core = document.core_properties
        metadata: dict[str, Any] = {}
        if core.title:
            metadata["title"] = core.title
        if core.author:
            metadata["author"] = core.author
        return [("\n\n".join(blocks), metadata)]


class CSVIngestor(FileIngestor):
    """One record per CSV row rendered as ``column: value`` lines."""

    source_type = SourceType.CSV
    allowed_mime_types = frozenset(
        {"text/csv", "application/csv", "application/vnd.ms-excel"}
    )
    default_suffix = ".csv"

    def parse_file(self, path: Path) -> list[ExtractedUnit]:
        frame = pd.read_csv(path, dtype=str, keep_default_na=False)

        units: list[ExtractedUnit] = []
        for row_num, row in enumerate(frame.itertuples(index=False), start=1):
            lines = [
                f"{column}: {value}"
                for column, value in zip(frame.columns, row, strict=True)
                if str(value).strip()
            ]
            units.append(("\n".join(lines), {"row": row_num}))
        return units


class JSONIngestor(FileIngestor):
    """One record per top-level array item, or one for an object."""

    source_type = SourceType.JSON
    allowed_mime_types = frozenset({"application/json", "text/json"})
    default_suffix = ".json"

    @staticmethod
    def _render(value: Any) -> str:
        if isinstance(value, str):
            return value
        return json.dumps(value, indent=2, ensure_ascii=False)

    def parse_file(self, path: Path) -> list[ExtractedUnit]:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            msg = f"Invalid JSON document: {exc.msg} (line {exc.lineno})"
            raise IngestionError(msg) from exc

        if isinstance(payload, list):
            return [
                (self._render(item), {"item": idx})
                for idx, item in enumerate(payload, start=1)
            ]
        return [(self._render(payload), {})]


class TextIngestor(FileIngestor):
    """Pasted text, or an uploaded ``.txt``/``.md`` file."""

    source_type = SourceType.TEXT
    allowed_mime_types = frozenset({"text/plain", "text/markdown", "text/x-markdown"})
    default_suffix = ".txt"

    def __init__(self, max_bytes: int | None = None, max_chars: int | None = None) -> None:
        super().__init__(max_bytes)
        self.max_chars = max_chars if max_chars is not None else config.MAX_TEXT_CHARS

    def resolve_mime_type(self, source: SourceInput) -> str | None:
        mime_type = super().resolve_mime_type(source)
        # mimetypes does not know .md on every platform
        if mime_type is None and source.filename and source.filename.lower().endswith(".md"):
            return "text/markdown"
        return mime_type

    def validate(self, source: SourceInput) -> None:
        """Validate pasted text, or the uploaded file when there is one.

        Raises:
            InputValidationError: If the text is blank or too long.
        """
        if source.data is not None:
            super().validate(source)
            return

        text = source.text or ""
        if not text.strip():
            msg = "No text content provided"
            raise InputValidationError(msg)
        if len(text) > self.max_chars:
            msg = f"Text exceeds the maximum length of {self.max_chars} characters"
            raise InputValidationError(msg)

    def source_name(self, source: SourceInput) -> str:
        if source.data is not None:
            return super().source_name(source)
        return TEXT_INPUT_SOURCE

    def parse_file(self, path: Path) -> list[ExtractedUnit]:
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            msg = "Text file is not valid UTF-8"
            raise IngestionError(msg) from exc
        return [(text, {})]

    def extract(self, source: SourceInput) -> list[ExtractedUnit]:
        if source.data is not None:
            return super().extract(source)
        return [(source.text or "", {})]
