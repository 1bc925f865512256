"""FAISS-backed vector storage with SQLite metadata."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

import faiss
import numpy as np

from ragchat.config import config
from ragchat.vector_store.base import BaseSQLiteStore

if TYPE_CHECKING:
    from ragchat.models import DocumentChunk, RetrievedResult

logger = config.get_logger(__name__)


class FaissVectorStore(BaseSQLiteStore):
    """One FAISS ``IndexIDMap(IndexFlatIP)`` per collection over unit vectors."""

    backend = "faiss"

    def __init__(
        self,
        db_path: Path = Path("data/vector_store.db"),
        index_dir: Path = Path("data/faiss"),
    ) -> None:
        """Configure FAISS-backed vector store.

        Args:
            db_path: Path to the SQLite metadata database.
            index_dir: Directory holding one ``<collection_id>.faiss`` file
                per collection.
        """
        self.index_dir = Path(index_dir)
        self.index_dir.mkdir(exist_ok=True, parents=True)
        self.indexes: dict[str, faiss.IndexIDMap] = {}

        super().__init__(db_path)

    @staticmethod
    def _normalize_embeddings(embeddings: np.ndarray) -> np.ndarray:
        """Normalize rows for cosine similarity using inner product search.

        Returns:
            Contiguous float32 matrix with unit-length rows (zero rows kept).
        """
        vectors = np.array(np.atleast_2d(embeddings), dtype="float32", order="C")
        faiss.normalize_L2(vectors)
        return vectors

    def _index_path(self, collection_id: str) -> Path:
        return self.index_dir / f"{collection_id}.faiss"

    def _init_index(self, collection_id: str, dimension: int) -> faiss.IndexIDMap:
        """Create an empty index for a collection."""
        index = faiss.IndexIDMap(faiss.IndexFlatIP(dimension))
        self.indexes[collection_id] = index
        logger.info(
            "Initialized FAISS IndexIDMap for %s with dimension %d",
            collection_id,
            dimension,
        )
        return index

    def _get_index(self, collection_id: str, dimension: int) -> faiss.IndexIDMap:
        """Return the cached index, loading it from disk when needed.

        Returns:
            The collection's FAISS index.
        """
        index = self.indexes.get(collection_id)
        if index is not None:
            return index

        index_path = self._index_path(collection_id)
        if not index_path.exists():
            return self._init_index(collection_id, dimension)

        loaded_index = faiss.read_index(str(index_path))
        if not isinstance(loaded_index, (faiss.IndexIDMap, faiss.IndexIDMap2)):
            logger.warning(
                "Loaded FAISS index is %s; wrapping with IndexIDMap to enable IDs",
                type(loaded_index).__name__,
            )
            loaded_index = faiss.IndexIDMap(loaded_index)
        self.indexes[collection_id] = loaded_index
        logger.info(
            "Loaded FAISS index from %s with %d vectors",
            index_path,
            loaded_index.ntotal,
        )
        return loaded_index

    def _save_index(self, collection_id: str, index: faiss.IndexIDMap) -> None:
        faiss.write_index(index, str(self._index_path(collection_id)))

    def _on_collection_created(self, collection_id: str, dimension: int) -> None:
        self._init_index(collection_id, dimension)

    def _on_collection_deleted(self, collection_id: str) -> None:
        self.indexes.pop(collection_id, None)
        self._index_path(collection_id).unlink(missing_ok=True)

    def upsert(self, collection_id: str, chunks: Sequence[DocumentChunk]) -> int:
        """Append chunks and embeddings to a collection.

        The metadata transaction is rolled back and the vectors removed again
        if any step fails, so a failed call leaves the collection unchanged.

        Raises:
            ValueError: If an embedding is missing or has the wrong dimension.
            CollectionNotFoundError: If the collection does not exist.

        Returns:
            Number of chunks written.
        """
        if not chunks:
            return 0

        with self._lock, self._connect() as conn:
            cursor = conn.cursor()
            info = self._require_collection(cursor, collection_id)
            vectors = self._normalize_embeddings(
                self._embedding_matrix(chunks, info.dimension)
            )
            index = self._get_index(collection_id, info.dimension)

            vector_ids = [
                self._insert_chunk_row(cursor, collection_id, chunk) for chunk in chunks
            ]
            ids_array = np.asarray(vector_ids, dtype="int64")

            index.add_with_ids(vectors, ids_array)  # pyright: ignore[reportCallIssue]  # FAISS stubs may not reflect add_with_ids signature
            try:
                self._save_index(collection_id, index)
            except RuntimeError:
                logger.exception("Error saving FAISS index for %s", collection_id)
                index.remove_ids(ids_array)
                raise

        for chunk, vector_id in zip(chunks, vector_ids, strict=True):
            chunk.metadata["vector_id"] = vector_id
        logger.info("Added %d vectors to FAISS collection %s", len(vector_ids), collection_id)
        return len(vector_ids)

    def search(
        self,
        collection_id: str,
        query_embedding: np.ndarray,
        top_k: int = 5,
    ) -> list[RetrievedResult]:
        """Search similar chunks in one collection.

        Raises:
            CollectionNotFoundError: If the collection does not exist.
            ValueError: If the query dimension does not match the collection.

        Returns:
            Results sorted by non-increasing cosine similarity.
        """
        with self._lock, self._connect() as conn:
            cursor = conn.cursor()
            info = self._require_collection(cursor, collection_id)
            index = self._get_index(collection_id, info.dimension)
            if index.ntotal == 0 or top_k <= 0:
                return []

            query = np.asarray(query_embedding, dtype="float32").reshape(-1)
            if query.shape[0] != info.dimension:
                msg = (
                    f"Query dimension {query.shape[0]} does not match "
                    f"collection dimension {info.dimension}"
                )
                raise ValueError(msg)

            scores, vector_ids = index.search(
                self._normalize_embeddings(query),
                min(top_k, index.ntotal),
            )  # pyright: ignore[reportCallIssue]

            return self._rank(
                cursor,
                (
                    (int(vector_id), float(score))
                    for score, vector_id in zip(scores[0], vector_ids[0], strict=True)
                    if int(vector_id) != -1  # faiss returns -1 for empty results
                ),
            )
