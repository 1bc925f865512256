"""Shared collection and metadata handling for SQLite-backed vector stores."""

from __future__ import annotations

import datetime
import json
import sqlite3
import threading
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

import numpy as np

from ragchat.config import config
from ragchat.errors import CollectionExistsError, CollectionNotFoundError
from ragchat.models import CollectionInfo, DocumentChunk, RetrievedResult

SUPPORTED_METRICS = frozenset({"cosine"})

logger = config.get_logger(__name__)


class BaseSQLiteStore:
    """Collection registry and chunk metadata kept in SQLite.

    Subclasses decide where vectors live and implement ``upsert`` and
    ``search``. Every public operation holds ``self._lock`` so a store
    instance can be shared between request threads.
    """

    backend = "base"

    def __init__(self, db_path: Path) -> None:
        """Initialize metadata store and ensure schema exists."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(exist_ok=True, parents=True)
        self._lock = threading.RLock()
        self._create_tables()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _create_tables(self) -> None:
        """Create collection and chunk tables if they don't exist."""
        with self._connect() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS collections (
                    collection_id TEXT PRIMARY KEY,
                    dimension INTEGER NOT NULL,
                    metric TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS chunks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    collection_id TEXT NOT NULL,
                    chunk_id INTEGER NOT NULL,
                    content TEXT NOT NULL,
                    metadata TEXT NOT NULL,
                    vector_file TEXT,
                    FOREIGN KEY (collection_id)
                        REFERENCES collections (collection_id) ON DELETE CASCADE
                )
            """)

            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_chunks_collection "
                "ON chunks(collection_id)"
            )
            conn.commit()

    # Collection registry

    @staticmethod
    def _row_to_info(row: Sequence[Any]) -> CollectionInfo:
        collection_id, dimension, metric, created_at, vector_count = row
        return CollectionInfo(
            collection_id=collection_id,
            dimension=int(dimension),
            metric=metric,
            created_at=created_at,
            vector_count=int(vector_count),
        )

    @staticmethod
    def _select_collections(
        cursor: sqlite3.Cursor,
        collection_id: str | None = None,
    ) -> list[tuple]:
        query = """
            SELECT
                c.collection_id,
                c.dimension,
                c.metric,
                c.created_at,
                (SELECT COUNT(*) FROM chunks k WHERE k.collection_id = c.collection_id)
            FROM collections c
        """
        if collection_id is None:
            cursor.execute(query + " ORDER BY c.created_at, c.rowid")
        else:
            cursor.execute(query + " WHERE c.collection_id = ?", (collection_id,))
        return cursor.fetchall()

    def _require_collection(
        self,
        cursor: sqlite3.Cursor,
        collection_id: str,
    ) -> CollectionInfo:
        """Fetch a collection descriptor.

        Raises:
            CollectionNotFoundError: If the collection does not exist.

        Returns:
            The collection descriptor.
        """
        rows = self._select_collections(cursor, collection_id)
        if not rows:
            msg = f"Collection {collection_id} does not exist"
            raise CollectionNotFoundError(msg)
        return self._row_to_info(rows[0])

    def collection_exists(self, collection_id: str) -> bool:
        with self._lock, self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT 1 FROM collections WHERE collection_id = ?",
                (collection_id,),
            )
            return cursor.fetchone() is not None

    def create_collection(
        self,
        collection_id: str,
        dimension: int,
        metric: str = "cosine",
    ) -> CollectionInfo:
        """Register a new empty collection.

        Raises:
            ValueError: If the dimension or metric is unsupported.
            CollectionExistsError: If the collection already exists.

        Returns:
            Descriptor of the created collection.
        """
        if dimension <= 0:
            msg = f"Collection dimension must be positive, got {dimension}"
            raise ValueError(msg)
        if metric not in SUPPORTED_METRICS:
            msg = f"Unsupported similarity metric: {metric}"
            raise ValueError(msg)

        created_at = datetime.datetime.now(tz=datetime.UTC).isoformat()
        with self._lock:
            try:
                with self._connect() as conn:
                    conn.execute(
                        "INSERT INTO collections "
                        "(collection_id, dimension, metric, created_at) "
                        "VALUES (?, ?, ?, ?)",
                        (collection_id, dimension, metric, created_at),
                    )
            except sqlite3.IntegrityError as exc:
                msg = f"Collection {collection_id} already exists"
                raise CollectionExistsError(msg) from exc

            self._on_collection_created(collection_id, dimension)

        logger.info(
            "Created %s collection %s (dimension %d, metric %s)",
            self.backend,
            collection_id,
            dimension,
            metric,
        )
        return CollectionInfo(
            collection_id=collection_id,
            dimension=dimension,
            metric=metric,
            created_at=created_at,
        )

    def get_collection(self, collection_id: str) -> CollectionInfo:
        with self._lock, self._connect() as conn:
            return self._require_collection(conn.cursor(), collection_id)

    def list_collections(self) -> list[CollectionInfo]:
        with self._lock, self._connect() as conn:
            return [self._row_to_info(row) for row in self._select_collections(conn.cursor())]

    def count(self, collection_id: str) -> int:
        return self.get_collection(collection_id).vector_count

    def delete_collection(self, collection_id: str) -> None:
        """Remove a collection, its chunks and its vectors.

        Raises:
            CollectionNotFoundError: If the collection does not exist.
        """
        with self._lock:
            with self._connect() as conn:
                cursor = conn.cursor()
                self._require_collection(cursor, collection_id)
                cursor.execute(
                    "DELETE FROM chunks WHERE collection_id = ?", (collection_id,)
                )
                cursor.execute(
                    "DELETE FROM collections WHERE collection_id = ?",
                    (collection_id,),
                )
            self._on_collection_deleted(collection_id)

        logger.info("Deleted %s collection %s", self.backend, collection_id)

    def _on_collection_created(self, collection_id: str, dimension: int) -> None:
        """Hook for backends that keep per-collection vector state."""

    def _on_collection_deleted(self, collection_id: str) -> None:
        """Hook for backends that keep per-collection vector state."""

    # Chunk rows

    @staticmethod
    def _embedding_matrix(
        chunks: Sequence[DocumentChunk],
        dimension: int,
    ) -> np.ndarray:
        """Stack chunk embeddings into a float32 matrix.

        Raises:
            ValueError: If a chunk has no embedding or the wrong dimension.

        Returns:
            Matrix of shape ``(len(chunks), dimension)``.
        """
        vectors = []
        for chunk in chunks:
            if chunk.embedding is None:
                msg = f"Chunk {chunk.metadata.get('chunk_id')} has no embedding"
                raise ValueError(msg)
            vector = np.asarray(chunk.embedding, dtype="float32").reshape(-1)
            if vector.shape[0] != dimension:
                msg = (
                    f"Embedding dimension {vector.shape[0]} does not match "
                    f"collection dimension {dimension}"
                )
                raise ValueError(msg)
            vectors.append(vector)
        return np.vstack(vectors)

    @staticmethod
    def _insert_chunk_row(
        cursor: sqlite3.Cursor,
        collection_id: str,
        chunk: DocumentChunk,
        *,
        vector_file: str | None = None,
    ) -> int:
        """Persist a chunk row.

        Raises:
            RuntimeError: If the chunk row cannot be inserted.

        Returns:
            Row id, used as the vector id.
        """
        cursor.execute(
            """
            INSERT INTO chunks (collection_id, chunk_id, content, metadata, vector_file)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                collection_id,
                int(chunk.metadata.get("chunk_id", 0)),
                chunk.content,
                json.dumps(chunk.metadata, ensure_ascii=False, default=str),
                vector_file,
            ),
        )
        chunk_row_id = cursor.lastrowid
        if chunk_row_id is None:
            msg = "Failed to insert chunk row"
            raise RuntimeError(msg)
        return int(chunk_row_id)

    @staticmethod
    def _set_vector_file(cursor: sqlite3.Cursor, row_id: int, vector_file: str) -> None:
        cursor.execute(
            "UPDATE chunks SET vector_file = ? WHERE id = ?",
            (vector_file, row_id),
        )

    @staticmethod
    def _build_chunk_from_row(row: Sequence[Any]) -> DocumentChunk:
        row_id, content, metadata_json = row
        metadata: dict[str, Any] = json.loads(metadata_json)
        metadata["vector_id"] = int(row_id)
        return DocumentChunk(content=content, metadata=metadata)

    def _fetch_chunks(
        self,
        cursor: sqlite3.Cursor,
        row_ids: Iterable[int],
    ) -> dict[int, DocumentChunk]:
        """Fetch chunks by row id.

        Returns:
            Mapping of row id to chunk; missing ids are absent.
        """
        ids = [int(row_id) for row_id in row_ids]
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        cursor.execute(
            f"SELECT id, content, metadata FROM chunks WHERE id IN ({placeholders})",  # noqa: S608
            ids,
        )
        return {int(row[0]): self._build_chunk_from_row(row) for row in cursor.fetchall()}

    def _rank(
        self,
        cursor: sqlite3.Cursor,
        scored_ids: Iterable[tuple[int, float]],
    ) -> list[RetrievedResult]:
        """Hydrate ``(row_id, score)`` pairs into results sorted by score.

        Returns:
            Results in non-increasing score order.
        """
        scored = list(scored_ids)
        chunks = self._fetch_chunks(cursor, [row_id for row_id, _ in scored])
        results = [
            RetrievedResult(chunk=chunks[row_id], score=float(score))
            for row_id, score in scored
            if row_id in chunks
        ]
        results.sort(key=lambda result: result.score, reverse=True)
        return results

    def upsert(self, collection_id: str, chunks: Sequence[DocumentChunk]) -> int:  # pragma: no cover - interface
        raise NotImplementedError

    def search(
        self,
        collection_id: str,
        query_embedding: np.ndarray,
        top_k: int = 5,
    ) -> list[RetrievedResult]:  # pragma: no cover - interface
        raise NotImplementedError
