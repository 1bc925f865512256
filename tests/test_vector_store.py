"""Unit tests for the vector stores.

Tests taking ``any_vector_store`` run once per backend.
"""

import sqlite3

import numpy as np
import pytest

from ragchat import DocumentChunk, SQLiteVectorStore, get_vector_store
from ragchat.errors import CollectionExistsError, CollectionNotFoundError
from ragchat.vector_store import FaissVectorStore

DIMENSION = 384


def _chunk(content, embedding, chunk_id=0, **metadata):
    return DocumentChunk(
        content=content,
        metadata={"source": "test_doc.txt", "chunk_id": chunk_id, **metadata},
        embedding=embedding,
    )


def test_store_initialization(temp_vector_store):
    store = temp_vector_store

    assert store.db_path.exists()
    assert store.vectors_dir.exists()
    assert store.list_collections() == []


def test_create_and_get_collection(any_vector_store):
    info = any_vector_store.create_collection("col-1", DIMENSION)

    assert info.collection_id == "col-1"
    assert info.dimension == DIMENSION
    assert info.metric == "cosine"
    assert info.vector_count == 0
    assert any_vector_store.collection_exists("col-1")
    assert any_vector_store.get_collection("col-1").dimension == DIMENSION


def test_create_duplicate_collection_fails(any_vector_store):
    any_vector_store.create_collection("col-1", DIMENSION)

    with pytest.raises(CollectionExistsError, match="col-1 already exists"):
        any_vector_store.create_collection("col-1", DIMENSION)


@pytest.mark.parametrize(
    ("dimension", "metric", "match"),
    [
        (0, "cosine", "dimension must be positive"),
        (DIMENSION, "euclidean", "Unsupported similarity metric"),
    ],
)
def test_create_collection_rejects_invalid_settings(
    any_vector_store, dimension, metric, match
):
    with pytest.raises(ValueError, match=match):
        any_vector_store.create_collection("col-1", dimension, metric)

    assert not any_vector_store.collection_exists("col-1")


def test_missing_collection_operations(any_vector_store, mock_embedding_service):
    query = mock_embedding_service.get_embedding("query")

    assert not any_vector_store.collection_exists("missing")
    with pytest.raises(CollectionNotFoundError, match="Collection missing does not exist"):
        any_vector_store.get_collection("missing")
    with pytest.raises(CollectionNotFoundError):
        any_vector_store.search("missing", query)
    with pytest.raises(CollectionNotFoundError):
        any_vector_store.upsert("missing", [_chunk("text", query)])
    with pytest.raises(CollectionNotFoundError):
        any_vector_store.delete_collection("missing")


def test_upsert_and_count(any_vector_store, sample_embedded_chunks):
    any_vector_store.create_collection("col-1", DIMENSION)

    written = any_vector_store.upsert("col-1", sample_embedded_chunks)

    assert written == len(sample_embedded_chunks)
    assert any_vector_store.count("col-1") == len(sample_embedded_chunks)
    vector_ids = [chunk.metadata["vector_id"] for chunk in sample_embedded_chunks]
    assert len(set(vector_ids)) == len(vector_ids)


def test_upsert_empty_list_is_noop(any_vector_store):
    any_vector_store.create_collection("col-1", DIMENSION)

    assert any_vector_store.upsert("col-1", []) == 0
    assert any_vector_store.count("col-1") == 0


def test_upsert_rejects_dimension_mismatch(any_vector_store, sample_embedded_chunks):
    any_vector_store.create_collection("col-1", DIMENSION)
    bad_chunk = _chunk("too short", np.ones(DIMENSION - 1, dtype=np.float32))

    with pytest.raises(ValueError, match="does not match collection dimension"):
        any_vector_store.upsert("col-1", [*sample_embedded_chunks, bad_chunk])

    assert any_vector_store.count("col-1") == 0


def test_upsert_rejects_missing_embedding(any_vector_store, sample_text_chunks):
    any_vector_store.create_collection("col-1", DIMENSION)

    with pytest.raises(ValueError, match="has no embedding"):
        any_vector_store.upsert("col-1", sample_text_chunks)

    assert any_vector_store.count("col-1") == 0


def test_search_returns_sorted_results(any_vector_store, sample_embedded_chunks):
    any_vector_store.create_collection("col-1", DIMENSION)
    any_vector_store.upsert("col-1", sample_embedded_chunks)

    query_embedding = sample_embedded_chunks[0].embedding
    results = any_vector_store.search("col-1", query_embedding, top_k=3)

    assert len(results) == 3
    assert results[0].chunk.content == sample_embedded_chunks[0].content
    assert isinstance(results[0].score, float)
    assert results[0].score > 0.99
    scores = [result.score for result in results]
    assert scores == sorted(scores, reverse=True)
    assert all(-1.0 - 1e-6 <= score <= 1.0 + 1e-6 for score in scores)


def test_search_caps_at_collection_size(any_vector_store, sample_embedded_chunks):
    any_vector_store.create_collection("col-1", DIMENSION)
    any_vector_store.upsert("col-1", sample_embedded_chunks[:2])

    results = any_vector_store.search(
        "col-1", sample_embedded_chunks[0].embedding, top_k=10
    )

    assert len(results) == 2


def test_search_metadata_roundtrip(any_vector_store, mock_embedding_service):
    any_vector_store.create_collection("col-1", DIMENSION)
    content = "Persisted chunk with metadata"
    chunk = _chunk(
        content,
        mock_embedding_service.get_embedding(content),
        chunk_id=7,
        page=3,
        labels=["alpha", "beta"],
        title="Café notes",
    )
    any_vector_store.upsert("col-1", [chunk])

    (result,) = any_vector_store.search(
        "col-1", mock_embedding_service.get_embedding(content), top_k=1
    )

    assert result.chunk.content == content
    assert result.chunk.metadata["page"] == 3
    assert result.chunk.metadata["labels"] == ["alpha", "beta"]
    assert result.chunk.metadata["title"] == "Café notes"
    assert isinstance(result.chunk.metadata["vector_id"], int)
    assert result.chunk.embedding is None


def test_empty_search(any_vector_store, mock_embedding_service):
    any_vector_store.create_collection("col-1", DIMENSION)

    results = any_vector_store.search(
        "col-1", mock_embedding_service.get_embedding("test query"), top_k=5
    )

    assert results == []


def test_search_with_non_positive_top_k(any_vector_store, sample_embedded_chunks):
    any_vector_store.create_collection("col-1", DIMENSION)
    any_vector_store.upsert("col-1", sample_embedded_chunks)

    assert any_vector_store.search("col-1", sample_embedded_chunks[0].embedding, 0) == []


def test_search_rejects_query_dimension_mismatch(
    any_vector_store, sample_embedded_chunks
):
    any_vector_store.create_collection("col-1", DIMENSION)
    any_vector_store.upsert("col-1", sample_embedded_chunks)

    with pytest.raises(ValueError, match="Query dimension"):
        any_vector_store.search("col-1", np.ones(8, dtype=np.float32))


def test_collections_are_isolated(any_vector_store, mock_embedding_service):
    any_vector_store.create_collection("col-a", DIMENSION)
    any_vector_store.create_collection("col-b", DIMENSION)
    any_vector_store.upsert(
        "col-a", [_chunk("apples", mock_embedding_service.get_embedding("apples"))]
    )
    any_vector_store.upsert(
        "col-b", [_chunk("oranges", mock_embedding_service.get_embedding("oranges"))]
    )

    results = any_vector_store.search(
        "col-a", mock_embedding_service.get_embedding("oranges"), top_k=5
    )

    assert [result.chunk.content for result in results] == ["apples"]


def test_list_collections_reports_counts(any_vector_store, sample_embedded_chunks):
    any_vector_store.create_collection("col-a", DIMENSION)
    any_vector_store.create_collection("col-b", DIMENSION)
    any_vector_store.upsert("col-b", sample_embedded_chunks)

    counts = {
        info.collection_id: info.vector_count
        for info in any_vector_store.list_collections()
    }

    assert counts == {"col-a": 0, "col-b": len(sample_embedded_chunks)}


def test_delete_collection(any_vector_store, sample_embedded_chunks):
    any_vector_store.create_collection("col-1", DIMENSION)
    any_vector_store.upsert("col-1", sample_embedded_chunks)

    any_vector_store.delete_collection("col-1")

    assert not any_vector_store.collection_exists("col-1")
    assert any_vector_store.list_collections() == []
    with sqlite3.connect(any_vector_store.db_path) as conn:
        count = conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
    assert count == 0

    any_vector_store.create_collection("col-1", DIMENSION)
    assert any_vector_store.count("col-1") == 0


def test_add_chunks_persisted_in_sqlite(temp_vector_store, sample_embedded_chunks):
    store = temp_vector_store
    store.create_collection("col-1", DIMENSION)
    store.upsert("col-1", sample_embedded_chunks)

    with sqlite3.connect(store.db_path) as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT COUNT(*) FROM chunks WHERE collection_id = ? "
            "AND vector_file IS NOT NULL",
            ("col-1",),
        )
        count = cursor.fetchone()[0]

    assert count == len(sample_embedded_chunks)
    assert len(list((store.vectors_dir / "col-1").glob("*.npy"))) == len(
        sample_embedded_chunks
    )


def test_persistence(temp_vector_store, sample_embedded_chunks):
    store = temp_vector_store
    store.create_collection("col-1", DIMENSION)
    store.upsert("col-1", sample_embedded_chunks)

    new_store = SQLiteVectorStore(store.db_path, store.vectors_dir)

    query_embedding = sample_embedded_chunks[0].embedding
    original_results = store.search("col-1", query_embedding, top_k=3)
    loaded_results = new_store.search("col-1", query_embedding, top_k=3)

    assert len(original_results) == len(loaded_results)
    for original, loaded in zip(original_results, loaded_results, strict=True):
        assert original.chunk.content == loaded.chunk.content
        assert abs(original.score - loaded.score) < 1e-6


def test_delete_removes_vector_files(temp_vector_store, sample_embedded_chunks):
    store = temp_vector_store
    store.create_collection("col-1", DIMENSION)
    store.upsert("col-1", sample_embedded_chunks)

    store.delete_collection("col-1")

    assert not (store.vectors_dir / "col-1").exists()


def test_cosine_similarity(temp_vector_store):
    store = temp_vector_store

    vec1 = np.array([1, 0, 0], dtype=np.float32)
    vec2 = np.array([0, 1, 0], dtype=np.float32)
    vec3 = np.array([1, 1, 0], dtype=np.float32) / np.sqrt(2)  # 45 degrees

    embeddings = np.vstack([vec1, vec2, vec3])

    similarities = store.cosine_similarity(vec1, embeddings)

    assert abs(similarities[0] - 1.0) < 1e-6  # Same vector
    assert abs(similarities[1] - 0.0) < 1e-6  # Orthogonal
    assert abs(similarities[2] - (1 / np.sqrt(2))) < 1e-6  # 45 degrees


def test_cosine_similarity_with_zero_vectors(temp_vector_store):
    embeddings = np.vstack([np.zeros(3), np.array([1.0, 0.0, 0.0])])

    zero_query = temp_vector_store.cosine_similarity(np.zeros(3), embeddings)
    zero_doc = temp_vector_store.cosine_similarity(np.array([1.0, 0.0, 0.0]), embeddings)

    assert np.all(zero_query == 0)
    assert zero_doc[0] == 0
    assert abs(zero_doc[1] - 1.0) < 1e-6


@pytest.mark.parametrize(
    ("backend", "expected_type"),
    [("faiss", FaissVectorStore), ("sqlite", SQLiteVectorStore), ("SQLite", SQLiteVectorStore)],
)
def test_get_vector_store_backends(tmp_path, backend, expected_type):
    store = get_vector_store(
        backend,
        db_path=tmp_path / "store.db",
        vectors_dir=tmp_path / "vectors",
        index_dir=tmp_path / "faiss",
    )

    assert isinstance(store, expected_type)


def test_get_vector_store_rejects_unknown_backend(tmp_path):
    with pytest.raises(ValueError, match="Unsupported vector store backend"):
        get_vector_store("chroma", db_path=tmp_path / "store.db")
