"""Vector store adapters and factory."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from ragchat.config import config

from .base import BaseSQLiteStore
from .faiss_store import FaissVectorStore
from .sqlite_store import SQLiteVectorStore

if TYPE_CHECKING:
    from pathlib import Path

VectorBackend = Literal["faiss", "sqlite"]
VectorStore = FaissVectorStore | SQLiteVectorStore


def get_vector_store(
    store: VectorBackend | str | None = None,
    *,
    db_path: Path | None = None,
    vectors_dir: Path | None = None,
    index_dir: Path | None = None,
) -> VectorStore:
    """Return a configured vector store instance.

    Raises:
        ValueError: If an unsupported backend is requested.
    """
    backend = (store or config.VECTOR_BACKEND).lower()
    if db_path is None:
        db_path = config.VECTOR_STORE_DB_PATH

    if backend == "faiss":
        return FaissVectorStore(
            db_path=db_path,
            index_dir=index_dir if index_dir is not None else config.FAISS_INDEX_DIR,
        )

    if backend == "sqlite":
        return SQLiteVectorStore(
            db_path=db_path,
            vectors_dir=(
                vectors_dir if vectors_dir is not None else config.VECTOR_STORE_DIR
            ),
        )

    msg = f"Unsupported vector store backend: {store}"
    raise ValueError(msg)


__all__ = [
    "BaseSQLiteStore",
    "FaissVectorStore",
    "SQLiteVectorStore",
    "VectorBackend",
    "VectorStore",
    "get_vector_store",
]
