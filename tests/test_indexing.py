"""Tests for VectorIndexManager."""

from unittest.mock import Mock

import numpy as np
import pytest

from ragchat import VectorIndexManager
from ragchat.errors import CollectionExistsError, IndexingError

DIMENSION = 384


@pytest.fixture
def index_manager(temp_faiss_store, mock_embedding_service):
    return VectorIndexManager(temp_faiss_store, mock_embedding_service, batch_size=2)


def test_ensure_collection_creates_once(index_manager, temp_faiss_store):
    index_manager.ensure_collection("col-1")
    index_manager.ensure_collection("col-1")

    info = temp_faiss_store.get_collection("col-1")
    assert info.dimension == DIMENSION
    assert info.metric == "cosine"
    assert len(temp_faiss_store.list_collections()) == 1


def test_ensure_collection_tolerates_concurrent_creation(mock_embedding_service):
    store = Mock()
    store.collection_exists.return_value = False
    store.create_collection.side_effect = CollectionExistsError("col-1 already exists")
    manager = VectorIndexManager(store, mock_embedding_service)

    manager.ensure_collection("col-1")

    store.create_collection.assert_called_once_with(
        "col-1", dimension=DIMENSION, metric="cosine"
    )


def test_ensure_collection_wraps_store_failures(mock_embedding_service):
    store = Mock()
    store.collection_exists.side_effect = OSError("database is locked")
    manager = VectorIndexManager(store, mock_embedding_service)

    with pytest.raises(IndexingError, match="Failed to create collection col-1"):
        manager.ensure_collection("col-1")


def test_index_embeds_and_writes(index_manager, temp_faiss_store, sample_text_chunks):
    index_manager.ensure_collection("col-1")

    written = index_manager.index(sample_text_chunks, "col-1")

    assert written == len(sample_text_chunks)
    assert temp_faiss_store.count("col-1") == len(sample_text_chunks)
    for chunk in sample_text_chunks:
        assert chunk.embedding is not None
        assert chunk.embedding.shape == (DIMENSION,)


def test_index_uses_configured_batch_size(temp_faiss_store, sample_text_chunks):
    embedding_service = Mock(dimension=DIMENSION)
    embedding_service.get_embeddings_batch.return_value = [
        np.ones(DIMENSION, dtype=np.float32) for _ in sample_text_chunks
    ]
    manager = VectorIndexManager(temp_faiss_store, embedding_service, batch_size=7)
    manager.ensure_collection("col-1")

    manager.index(sample_text_chunks, "col-1")

    embedding_service.get_embeddings_batch.assert_called_once_with(
        [chunk.content for chunk in sample_text_chunks], batch_size=7
    )


def test_index_empty_chunks_returns_zero(index_manager, mock_embedding_service):
    assert index_manager.index([], "col-1") == 0
    assert mock_embedding_service.calls == []


def test_index_embedding_failure_writes_nothing(temp_faiss_store, sample_text_chunks):
    embedding_service = Mock(dimension=DIMENSION)
    embedding_service.get_embeddings_batch.side_effect = Exception("rate limited")
    manager = VectorIndexManager(temp_faiss_store, embedding_service)
    manager.ensure_collection("col-1")

    with pytest.raises(IndexingError, match="Failed to index document chunks into col-1"):
        manager.index(sample_text_chunks, "col-1")

    assert temp_faiss_store.count("col-1") == 0


def test_index_rejects_short_embedding_batch(temp_faiss_store, sample_text_chunks):
    embedding_service = Mock(dimension=DIMENSION)
    embedding_service.get_embeddings_batch.return_value = [
        np.ones(DIMENSION, dtype=np.float32)
    ]
    manager = VectorIndexManager(temp_faiss_store, embedding_service)
    manager.ensure_collection("col-1")

    with pytest.raises(IndexingError) as exc_info:
        manager.index(sample_text_chunks, "col-1")

    assert "Expected 5 embeddings, got 1" in str(exc_info.value.__cause__)
    assert temp_faiss_store.count("col-1") == 0


def test_index_into_missing_collection_fails(index_manager, sample_text_chunks):
    with pytest.raises(IndexingError):
        index_manager.index(sample_text_chunks, "missing")
