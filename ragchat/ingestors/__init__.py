"""Document ingestors, one per source type, looked up through a registry."""

from __future__ import annotations

from ragchat.errors import InputValidationError
from ragchat.models import SourceInput, SourceType

from .base import BaseIngestor, FileIngestor, is_youtube_url, validate_url, youtube_video_id
from .files import CSVIngestor, DocxIngestor, JSONIngestor, PDFIngestor, TextIngestor
from .web import WebPageIngestor, YouTubeIngestor, build_http_session


class IngestorRegistry:
    """Maps source types to ingestor instances."""

    def __init__(self) -> None:
        self._ingestors: dict[SourceType, BaseIngestor] = {}

    def register(self, ingestor: BaseIngestor) -> None:
        self._ingestors[ingestor.source_type] = ingestor

    def get(self, source_type: SourceType) -> BaseIngestor:
        """Return the ingestor registered for ``source_type``.

        Raises:
            InputValidationError: If nothing is registered for it.
        """
        try:
            return self._ingestors[SourceType(source_type)]
        except (KeyError, ValueError):
            msg = f"Unsupported source type: {source_type}"
            raise InputValidationError(msg) from None

    def for_source(self, source: SourceInput) -> BaseIngestor:
        """Pick the ingestor for a submission.

        A ``url`` submission pointing at a YouTube video is routed to the
        YouTube ingestor when one is registered.

        Returns:
            The ingestor that should handle ``source``.
        """
        if (
            source.source_type == SourceType.URL
            and SourceType.YOUTUBE in self._ingestors
            and is_youtube_url(source.text)
        ):
            return self._ingestors[SourceType.YOUTUBE]
        return self.get(source.source_type)

    @property
    def source_types(self) -> list[SourceType]:
        return list(self._ingestors)


def default_registry() -> IngestorRegistry:
    """Build a registry with every built-in ingestor.

    Returns:
        Registry covering all source types.
    """
    session = build_http_session()
    registry = IngestorRegistry()
    for ingestor in (
        PDFIngestor(),
        DocxIngestor(),
        TextIngestor(),
        CSVIngestor(),
        JSONIngestor(),
        WebPageIngestor(session=session),
        YouTubeIngestor(session=session),
    ):
        registry.register(ingestor)
    return registry


__all__ = [
    "BaseIngestor",
    "CSVIngestor",
    "DocxIngestor",
    "FileIngestor",
    "IngestorRegistry",
    "JSONIngestor",
    "PDFIngestor",
    "TextIngestor",
    "WebPageIngestor",
    "YouTubeIngestor",
    "build_http_session",
    "default_registry",
    "is_youtube_url",
    "validate_url",
    "youtube_video_id",
]
