"""Common ingestor interface, input validation and temporary file handling."""

from __future__ import annotations

import datetime
import mimetypes
import re
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, ClassVar
from urllib.parse import urlparse

from ragchat.config import config
from ragchat.errors import IngestionError, InputValidationError, NoContentError
from ragchat.models import DocumentRecord, SourceInput, SourceType

logger = config.get_logger(__name__)

_YOUTUBE_PATTERNS = (
    re.compile(
        r"^(?:www\.|m\.|music\.)?youtube\.com/watch\?(?:.*&)?v=(?P<id>[\w-]{11})"
    ),
    re.compile(r"^(?:www\.|m\.)?youtube\.com/(?:shorts|embed|live|v)/(?P<id>[\w-]{11})"),
    re.compile(r"^youtu\.be/(?P<id>[\w-]{11})"),
)

ExtractedUnit = tuple[str, dict[str, Any]]


def validate_url(url: str | None) -> str:
    """Check that ``url`` is a well-formed http(s) URL.

    Returns:
        The stripped URL.

    Raises:
        InputValidationError: If the URL is missing or malformed.
    """
    candidate = (url or "").strip()
    if not candidate:
        msg = "No URL provided"
        raise InputValidationError(msg)

    parsed = urlparse(candidate)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        msg = f"Invalid URL format: {candidate}"
        raise InputValidationError(msg)
    return candidate


def youtube_video_id(url: str) -> str | None:
    """Extract the video id from a YouTube URL.

    Returns:
        The 11-character video id, or None if the URL is not a YouTube video.
    """
    parsed = urlparse(url.strip())
    if parsed.scheme not in {"http", "https"}:
        return None
    location = parsed.netloc.lower() + parsed.path
    if parsed.query:
        location += "?" + parsed.query
    for pattern in _YOUTUBE_PATTERNS:
        match = pattern.match(location)
        if match:
            return match.group("id")
    return None


def is_youtube_url(url: str | None) -> bool:
    return bool(url) and youtube_video_id(url) is not None


def utc_timestamp() -> str:
    return datetime.datetime.now(tz=datetime.UTC).isoformat()


class BaseIngestor:
    """Turns one SourceInput into an ordered list of DocumentRecords."""

    source_type: ClassVar[SourceType]

    def validate(self, source: SourceInput) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def extract(self, source: SourceInput) -> list[ExtractedUnit]:  # pragma: no cover - interface
        raise NotImplementedError

    def source_name(self, source: SourceInput) -> str:
        return source.filename or source.text or self.source_type.value

    def load(self, source: SourceInput, collection_id: str) -> list[DocumentRecord]:
        """Validate, extract and stamp provenance metadata on every record.

        Returns:
            Non-empty list of records.

        Raises:
            NoContentError: If the source yields no text.
        """
        self.validate(source)
        name = self.source_name(source)
        ingested_at = utc_timestamp()

        records = []
        for text, extra in self.extract(source):
            if not text or not text.strip():
                continue
            metadata = {
                **extra,
                "source": name,
                "source_type": self.source_type.value,
                "ingested_at": ingested_at,
                "collection_id": collection_id,
            }
            records.append(DocumentRecord(text=text, metadata=metadata))

        if not records:
            msg = f"No content could be extracted from {name}"
            raise NoContentError(msg)

        logger.info(
            "Loaded %d record(s) from %s source %s",
            len(records),
            self.source_type.value,
            name,
        )
        return records


class FileIngestor(BaseIngestor):
    """Ingestor for uploaded files parsed from a temporary path."""

    allowed_mime_types: ClassVar[frozenset[str]] = frozenset()
    default_suffix: ClassVar[str] = ""

    def __init__(self, max_bytes: int | None = None) -> None:
        self.max_bytes = max_bytes if max_bytes is not None else config.MAX_UPLOAD_BYTES

    def resolve_mime_type(self, source: SourceInput) -> str | None:
        declared = (source.mime_type or "").split(";")[0].strip().lower()
        if declared and declared != "application/octet-stream":
            return declared
        if source.filename:
            guessed, _ = mimetypes.guess_type(source.filename)
            return guessed
        return None

    def validate(self, source: SourceInput) -> None:
        """Check presence, size and MIME type of the upload.

        Raises:
            InputValidationError: If the upload is missing, too large or of an
                unsupported type.
        """
        name = source.filename or "upload"
        if not source.data:
            msg = f"No {self.source_type.value.upper()} file provided"
            raise InputValidationError(msg)

        if len(source.data) > self.max_bytes:
            limit_mb = self.max_bytes / (1024 * 1024)
            msg = f"File {name} exceeds the maximum size of {limit_mb:g}MB"
            raise InputValidationError(msg)

        mime_type = self.resolve_mime_type(source)
        if mime_type not in self.allowed_mime_types:
            msg = f"Unsupported file type for {name}: {mime_type or 'unknown'}"
            raise InputValidationError(msg)

    def source_name(self, source: SourceInput) -> str:
        return source.filename or f"upload{self.default_suffix}"

    @contextmanager
    def temporary_file(self, source: SourceInput) -> Iterator[Path]:
        """Write the upload to a temporary file that is removed on exit.

        Yields:
            Path to the temporary file.
        """
        suffix = Path(source.filename).suffix if source.filename else ""
        with tempfile.NamedTemporaryFile(
            delete=False, suffix=suffix or self.default_suffix
        ) as tmp_file:
            tmp_file.write(source.data or b"")
            tmp_path = Path(tmp_file.name)

        try:
            yield tmp_path
        finally:
            tmp_path.unlink(missing_ok=True)

    def parse_file(self, path: Path) -> list[ExtractedUnit]:  # pragma: no cover - interface
        raise NotImplementedError

    def extract(self, source: SourceInput) -> list[ExtractedUnit]:
        """Parse the upload from a temporary file.

        Returns:
            Extracted text units with their format-specific metadata.

        Raises:
            IngestionError: If the file cannot be parsed.
        """
        name = self.source_name(source)
        with self.temporary_file(source) as path:
            try:
                units = self.parse_file(path)
            except IngestionError:
                raise
            except Exception as exc:
                logger.exception("Error parsing %s file %s", self.source_type.value, name)
                msg = f"Could not read {self.source_type.value.upper()} file {name}"
                raise IngestionError(msg) from exc
        return units
