"""Data models for the RAG application."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal

import numpy as np


class SourceType(StrEnum):
    """Kinds of input the ingestion pipeline accepts."""

    PDF = "pdf"
    TEXT = "text"
    URL = "url"
    YOUTUBE = "youtube"
    DOCX = "docx"
    CSV = "csv"
    JSON = "json"


@dataclass(slots=True)
class SourceInput:
    """Raw user input for a single ingestion request.

    ``text`` holds pasted text or a URL; ``data`` holds uploaded file bytes.
    """

    source_type: SourceType
    text: str | None = None
    data: bytes | None = None
    filename: str | None = None
    mime_type: str | None = None


@dataclass(slots=True)
class DocumentRecord:
    """A logical content unit extracted from a source (a page, a row, a page body)."""

    text: str
    metadata: dict[str, Any]


@dataclass
class DocumentChunk:
    """Represents a chunk of text from a document."""

    content: str
    metadata: dict[str, Any]
    embedding: np.ndarray | None = None


@dataclass(slots=True)
class RetrievedResult:
    """A chunk returned by a similarity search, with its score."""

    chunk: DocumentChunk
    score: float


@dataclass(slots=True)
class CollectionInfo:
    """Descriptor of a vector collection."""

    collection_id: str
    dimension: int
    metric: str
    created_at: str
    vector_count: int = 0


@dataclass(slots=True)
class ConversationTurn:
    """Represents a single turn in the conversation."""

    role: Literal["user", "assistant"]
    content: str


@dataclass(slots=True)
class SourceSnippet:
    """Preview of a retrieved chunk returned alongside an answer."""

    content: str
    metadata: dict[str, Any]
    score: float


@dataclass(slots=True)
class ChatAnswer:
    """Outcome of a single chat turn."""

    answer: str
    sources: list[SourceSnippet] = field(default_factory=list)
    hypothetical_answer: str | None = None
    found: bool = True


@dataclass(slots=True)
class IngestionResult:
    """Outcome of a successful ingestion."""

    collection_id: str
    chunk_count: int
    source: str
    source_type: SourceType


@dataclass(slots=True)
class BatchItemResult:
    """Per-source outcome inside a batch upload."""

    source: str
    result: IngestionResult | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.result is not None


@dataclass(slots=True)
class SourceRecord:
    """A source that has been ingested for a session."""

    collection_id: str
    source: str
    source_type: SourceType
    chunk_count: int
    ingested_at: str
