"""SQLite-based vector storage with numpy file backend."""

from __future__ import annotations

import shutil
from collections.abc import Sequence
from pathlib import Path

import numpy as np

from ragchat.config import config
from ragchat.models import DocumentChunk, RetrievedResult  # noqa: TC001
from ragchat.vector_store.base import BaseSQLiteStore

logger = config.get_logger(__name__)


class SQLiteVectorStore(BaseSQLiteStore):
    """Vector storage using SQLite for metadata and numpy files for embeddings."""

    backend = "sqlite"

    def __init__(
        self,
        db_path: Path = Path("data/vector_store.db"),
        vectors_dir: Path = Path("data/vectors"),
    ) -> None:
        """Initialize the SQLiteVectorStore with database and vector directory paths.

        Args:
            db_path: Path to the SQLite database file.
            vectors_dir: Directory to store numpy vector files, one
                sub-directory per collection.
        """
        self.vectors_dir = Path(vectors_dir)
        self.vectors_dir.mkdir(exist_ok=True, parents=True)
        # collection_id -> (row ids, embeddings matrix)
        self._matrices: dict[str, tuple[list[int], np.ndarray]] = {}

        super().__init__(db_path)

    def _collection_dir(self, collection_id: str) -> Path:
        return self.vectors_dir / collection_id

    def _on_collection_deleted(self, collection_id: str) -> None:
        self._matrices.pop(collection_id, None)
        shutil.rmtree(self._collection_dir(collection_id), ignore_errors=True)

    def upsert(self, collection_id: str, chunks: Sequence[DocumentChunk]) -> int:
        """Append chunks with embeddings to a collection.

        Vector files written by a failed call are removed and the metadata
        transaction is rolled back.

        Raises:
            ValueError: If an embedding is missing or has the wrong dimension.
            CollectionNotFoundError: If the collection does not exist.

        Returns:
            Number of chunks written.
        """
        if not chunks:
            return 0

        written: list[Path] = []
        row_ids: list[int] = []
        with self._lock:
            try:
                with self._connect() as conn:
                    cursor = conn.cursor()
                    info = self._require_collection(cursor, collection_id)
                    matrix = self._embedding_matrix(chunks, info.dimension)

                    collection_dir = self._collection_dir(collection_id)
                    collection_dir.mkdir(exist_ok=True, parents=True)

                    for chunk, embedding in zip(chunks, matrix, strict=True):
                        row_id = self._insert_chunk_row(cursor, collection_id, chunk)
                        vector_file = f"chunk{row_id:08d}.npy"
                        vector_path = collection_dir / vector_file
                        np.save(vector_path, embedding)
                        written.append(vector_path)
                        self._set_vector_file(cursor, row_id, vector_file)
                        row_ids.append(row_id)
            except Exception:
                for vector_path in written:
                    vector_path.unlink(missing_ok=True)
                raise

            self._matrices.pop(collection_id, None)

        for chunk, row_id in zip(chunks, row_ids, strict=True):
            chunk.metadata["vector_id"] = row_id
        logger.info("Added %d chunks to SQLite collection %s", len(row_ids), collection_id)
        return len(row_ids)

    def _load_matrix(self, collection_id: str) -> tuple[list[int], np.ndarray | None]:
        """Build the embeddings matrix of a collection from its vector files.

        Returns:
            Row ids and the matching matrix (None when the collection is empty).
        """
        cached = self._matrices.get(collection_id)
        if cached is not None:
            return cached

        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, vector_file FROM chunks
                WHERE collection_id = ? AND vector_file IS NOT NULL
                ORDER BY id
                """,
                (collection_id,),
            )
            rows = cursor.fetchall()

        row_ids: list[int] = []
        embeddings_list = []
        collection_dir = self._collection_dir(collection_id)
        for row_id, vector_file in rows:
            vector_path = collection_dir / vector_file
            if not vector_path.exists():
                logger.warning("Vector file not found: %s", vector_path)
                continue
            row_ids.append(int(row_id))
            embeddings_list.append(np.load(vector_path))

        if not embeddings_list:
            return [], None

        matrix = np.vstack(embeddings_list)
        self._matrices[collection_id] = (row_ids, matrix)
        logger.info(
            "Rebuilt embeddings matrix for %s with %d vectors",
            collection_id,
            len(row_ids),
        )
        return row_ids, matrix

    @staticmethod
    def cosine_similarity(
        query_embedding: np.ndarray,
        embeddings: np.ndarray,
    ) -> np.ndarray:
        """Calculate cosine similarity between query and document embeddings.

        Zero vectors score 0 against everything.

        Returns:
            np.ndarray: Array of cosine similarity scores
                    between the query and each document embedding.
        """
        query_norm = np.linalg.norm(query_embedding)
        if query_norm == 0:
            return np.zeros(embeddings.shape[0], dtype="float32")
        doc_norms = np.linalg.norm(embeddings, axis=1)
        doc_norms[doc_norms == 0] = 1.0

        return np.dot(embeddings, query_embedding) / (doc_norms * query_norm)

    def search(
        self,
        collection_id: str,
        query_embedding: np.ndarray,
        top_k: int = 5,
    ) -> list[RetrievedResult]:
        """Search for similar chunks in one collection.

        Raises:
            CollectionNotFoundError: If the collection does not exist.
            ValueError: If the query dimension does not match the collection.

        Returns:
            Results sorted by non-increasing cosine similarity.
        """
        with self._lock:
            with self._connect() as conn:
                info = self._require_collection(conn.cursor(), collection_id)

            query = np.asarray(query_embedding, dtype="float32").reshape(-1)
            if query.shape[0] != info.dimension:
                msg = (
                    f"Query dimension {query.shape[0]} does not match "
                    f"collection dimension {info.dimension}"
                )
                raise ValueError(msg)

            row_ids, embeddings = self._load_matrix(collection_id)
            if embeddings is None or top_k <= 0:
                return []

            similarities = self.cosine_similarity(query, embeddings)
            top_indices = np.argsort(similarities)[::-1][:top_k]

            with self._connect() as conn:
                return self._rank(
                    conn.cursor(),
                    ((row_ids[idx], float(similarities[idx])) for idx in top_indices),
                )
