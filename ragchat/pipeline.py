"""Ingestion pipeline: Load -> Split -> Embed -> Store, one collection per source."""

import uuid
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from .config import config
from .document_processing import TextChunker
from .errors import IndexingError, RAGChatError
from .indexing import VectorIndexManager
from .ingestors import IngestorRegistry, default_registry
from .models import (
    BatchItemResult,
    CollectionInfo,
    IngestionResult,
    SourceInput,
    SourceRecord,
    SourceType,
)
from .sessions import UploadTracker
from .vector_store import VectorStore

logger = config.get_logger(__name__)

GENERIC_INGEST_FAILURE = "Failed to process document"


def describe_source(source: SourceInput) -> str:
    """Short human-readable label for a submission."""
    if source.filename:
        return source.filename
    if source.text and source.source_type in {SourceType.URL, SourceType.YOUTUBE}:
        return source.text.strip()
    return source.source_type.value


class RAGPipeline:
    """Turns user submissions into populated vector collections."""

    def __init__(
        self,
        index_manager: VectorIndexManager,
        *,
        registry: IngestorRegistry | None = None,
        chunker: TextChunker | None = None,
        tracker: UploadTracker | None = None,
        max_workers: int | None = None,
    ) -> None:
        """Initialize the ingestion pipeline.

        Args:
            index_manager: Write path into the vector store.
            registry: Ingestor lookup. Defaults to every built-in ingestor.
            chunker: Text chunker. Defaults to config.CHUNK_SIZE and
                config.CHUNK_OVERLAP.
            tracker: Per-session upload cap state.
            max_workers: Thread pool size for batch ingestion. If None, uses
                config.INGEST_MAX_WORKERS.
        """
        self.index_manager = index_manager
        self.registry = registry or default_registry()
        self.chunker = chunker or TextChunker(
            chunk_size=config.CHUNK_SIZE, overlap=config.CHUNK_OVERLAP
        )
        self.tracker = tracker or UploadTracker()
        self.max_workers = max_workers or config.INGEST_MAX_WORKERS

    @property
    def vector_store(self) -> VectorStore:
        return self.index_manager.vector_store

    def _drop_collection(self, collection_id: str) -> None:
        """Best-effort removal of a partially written collection."""
        try:
            if self.vector_store.collection_exists(collection_id):
                self.vector_store.delete_collection(collection_id)
                logger.warning("Dropped partial collection %s", collection_id)
        except Exception:
            logger.exception("Could not drop partial collection %s", collection_id)

    def ingest(self, source: SourceInput, session_id: str | None = None) -> IngestionResult:
        """Ingest one source into a fresh collection.

        Args:
            source: The user's submission.
            session_id: Session the source counts against; None skips the cap.

        Returns:
            IngestionResult: The new collection id and chunk count.

        Raises:
            UploadLimitError: If the session is already at its cap.
            InputValidationError: If the submission is invalid.
            IngestionError: If the source cannot be read or is empty.
            IndexingError: If embedding or storing the chunks fails.
        """
        with self.tracker.reserve(session_id) as slot:
            ingestor = self.registry.for_source(source)
            collection_id = str(uuid.uuid4())
            logger.info(
                "Starting ingestion of %s source into %s",
                ingestor.source_type.value,
                collection_id,
            )

            records = ingestor.load(source, collection_id)
            chunks = self.chunker.chunk_records(records)

            try:
                self.index_manager.ensure_collection(collection_id)
                chunk_count = self.index_manager.index(chunks, collection_id)
            except IndexingError:
                self._drop_collection(collection_id)
                raise

            source_name = records[0].metadata["source"]
            slot.commit(
                SourceRecord(
                    collection_id=collection_id,
                    source=source_name,
                    source_type=ingestor.source_type,
                    chunk_count=chunk_count,
                    ingested_at=records[0].metadata["ingested_at"],
                )
            )

        logger.info(
            "Successfully processed %d document chunks from %s", chunk_count, source_name
        )
        return IngestionResult(
            collection_id=collection_id,
            chunk_count=chunk_count,
            source=source_name,
            source_type=ingestor.source_type,
        )

    def _ingest_item(self, source: SourceInput, session_id: str | None) -> BatchItemResult:
        label = describe_source(source)
        try:
            result = self.ingest(source, session_id)
        except RAGChatError as exc:
            logger.warning("Batch item %s failed: %s", label, exc)
            return BatchItemResult(source=label, error=str(exc))
        except Exception:
            logger.exception("Unexpected error ingesting batch item %s", label)
            return BatchItemResult(source=label, error=GENERIC_INGEST_FAILURE)
        return BatchItemResult(source=label, result=result)

    def ingest_batch(
        self,
        sources: Sequence[SourceInput],
        session_id: str | None = None,
    ) -> list[BatchItemResult]:
        """Ingest several independent sources concurrently.

        One failure does not affect the others.

        Returns:
            One result per source, in input order.
        """
        if not sources:
            return []

        workers = min(self.max_workers, len(sources))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ingest") as pool:
            futures = [
                pool.submit(self._ingest_item, source, session_id) for source in sources
            ]
            results = [future.result() for future in futures]

        succeeded = sum(1 for item in results if item.success)
        logger.info("Batch ingestion finished: %d/%d succeeded", succeeded, len(results))
        return results

    def delete_source(self, collection_id: str, session_id: str | None = None) -> None:
        """Delete a source's collection and free its session slot.

        Raises:
            CollectionNotFoundError: If the collection does not exist.
        """
        if session_id is not None:
            self.tracker.release(session_id, collection_id)
        self.vector_store.delete_collection(collection_id)

    def list_collections(self) -> list[CollectionInfo]:
        return self.vector_store.list_collections()
