"""Pydantic request and response models for the HTTP API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ragchat.models import CollectionInfo, ConversationTurn, SourceRecord, SourceSnippet


class CamelModel(BaseModel):
    """Accepts and emits camelCase field names; snake_case is accepted too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HistoryMessage(CamelModel):
    role: Literal["user", "assistant"]
    content: str

    def to_turn(self) -> ConversationTurn:
        return ConversationTurn(role=self.role, content=self.content)


class ChatRequest(CamelModel):
    message: str = ""
    collection_id: str | None = None
    collection_ids: list[str] | None = None
    conversation_history: list[HistoryMessage] = Field(default_factory=list)
    use_hyde: bool = Field(default=True, alias="useHyDE")
    session_id: str | None = None

    def target_collections(self) -> list[str]:
        ids = list(self.collection_ids or [])
        if self.collection_id:
            ids.insert(0, self.collection_id)
        return list(dict.fromkeys(ids))


class SourcePayload(CamelModel):
    content: str
    metadata: dict[str, Any]
    score: float

    @classmethod
    def from_snippet(cls, snippet: SourceSnippet) -> SourcePayload:
        return cls(content=snippet.content, metadata=snippet.metadata, score=snippet.score)


class ChatResponse(CamelModel):
    success: bool
    response: str
    sources: list[SourcePayload] = Field(default_factory=list)
    hyde_query: str | None = None
    error: str | None = None


class UploadResponse(CamelModel):
    success: bool
    collection_id: str | None = None
    document_count: int = 0
    message: str


class BatchItemPayload(CamelModel):
    source: str
    success: bool
    collection_id: str | None = None
    document_count: int = 0
    message: str


class BatchUploadResponse(CamelModel):
    success: bool
    results: list[BatchItemPayload]


class CollectionPayload(CamelModel):
    collection_id: str
    dimension: int
    metric: str
    created_at: str
    vector_count: int

    @classmethod
    def from_info(cls, info: CollectionInfo) -> CollectionPayload:
        return cls(
            collection_id=info.collection_id,
            dimension=info.dimension,
            metric=info.metric,
            created_at=info.created_at,
            vector_count=info.vector_count,
        )


class CollectionsResponse(CamelModel):
    success: bool
    collections: list[CollectionPayload]


class DeleteCollectionRequest(CamelModel):
    collection_id: str = ""
    session_id: str | None = None


class MessageResponse(CamelModel):
    success: bool
    message: str


class SessionSourcePayload(CamelModel):
    collection_id: str
    source: str
    source_type: str
    chunk_count: int
    ingested_at: str

    @classmethod
    def from_record(cls, record: SourceRecord) -> SessionSourcePayload:
        return cls(
            collection_id=record.collection_id,
            source=record.source,
            source_type=record.source_type.value,
            chunk_count=record.chunk_count,
            ingested_at=record.ingested_at,
        )


class SessionSourcesResponse(CamelModel):
    success: bool
    session_id: str
    sources: list[SessionSourcePayload]
    remaining: int
