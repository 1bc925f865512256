"""Test configuration and fixtures for RAGChat tests.

This module provides reusable test fixtures organized by functionality:
- Constants and test data
- Mock services and API responses
- EmbeddingService fixtures
- Text processing fixtures
- Vector store fixtures
- Pipeline and service factories
"""

import hashlib
import re
from unittest.mock import Mock, patch

import numpy as np
import pytest

from ragchat import (
    AnswerSynthesizer,
    ConversationManager,
    DocumentChunk,
    EmbeddingService,
    FaissVectorStore,
    HypotheticalAnswerGenerator,
    IngestorRegistry,
    RAGPipeline,
    RAGServices,
    RetrievalOrchestrator,
    Retriever,
    SQLiteVectorStore,
    TextChunker,
    UploadTracker,
    VectorIndexManager,
)
from ragchat.ingestors import (
    CSVIngestor,
    DocxIngestor,
    JSONIngestor,
    PDFIngestor,
    TextIngestor,
)

TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


class TestConstants:
    """Centralized test constants to avoid repetition across test files."""

    # API Configuration
    TEST_API_KEY = "test-key"
    TEST_OPENAI_MODEL = "text-embedding-3-small"
    DEFAULT_EMBEDDING_DIMENSION = 384

    # Text Chunking Configuration
    SMALL_CHUNK_SIZE = 100
    SMALL_CHUNK_OVERLAP = 20
    DEFAULT_CHUNK_SIZE = 500
    DEFAULT_CHUNK_OVERLAP = 100

    # Sessions
    MAX_SOURCES = 2


class MockEmbeddingService:
    """Mock embedding service for testing without API calls.

    Builds a bag-of-words vector by hashing each lowercase token into a
    bucket, so texts that share words get a positive cosine similarity and
    results are identical across runs.
    """

    def __init__(
        self, dimension: int = TestConstants.DEFAULT_EMBEDDING_DIMENSION
    ) -> None:
        self.dimension = dimension
        self.calls: list[str] = []

    def _bucket(self, token: str) -> int:
        digest = hashlib.sha256(token.encode("utf-8")).digest()[:8]
        return int.from_bytes(digest, byteorder="big") % self.dimension

    def get_embedding(self, text: str) -> np.ndarray:
        self.calls.append(text)
        embedding = np.zeros(self.dimension, dtype=np.float32)
        for token in TOKEN_PATTERN.findall(text.lower()):
            embedding[self._bucket(token)] += 1.0
        norm = np.linalg.norm(embedding)
        return embedding / norm if norm else embedding

    def get_embeddings_batch(
        self,
        texts: list[str],
        batch_size: int | None = None,  # noqa: ARG002
    ) -> list[np.ndarray]:
        return [self.get_embedding(text) for text in texts]


class StubGenerationService:
    """Scripted stand-in for GenerationService.

    Each call pops the next scripted response; an exception instance in the
    script is raised instead of returned. Prompts are recorded in ``calls``.
    """

    def __init__(
        self,
        responses: list[str | Exception] | None = None,
        default: str = "Test response",
    ) -> None:
        self.responses = list(responses or [])
        self.default = default
        self.calls: list[dict] = []

    def generate(self, prompt: str, *, max_tokens: int, temperature: float) -> str:
        self.calls.append(
            {"prompt": prompt, "max_tokens": max_tokens, "temperature": temperature}
        )
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def prompts(self) -> list[str]:
        return [call["prompt"] for call in self.calls]


def create_mock_openai_response(embeddings: list[list[float]]) -> Mock:
    """Create a mock OpenAI embeddings API response.

    Args:
        embeddings: List of embedding vectors to return.

    Returns:
        Mock object representing OpenAI embeddings API response.
    """
    mock_response = Mock()
    mock_response.data = [Mock(embedding=emb) for emb in embeddings]
    return mock_response


def create_mock_chat_response(content: str | None) -> Mock:
    """Create a mock OpenAI chat completion response.

    Args:
        content: The content for the chat completion response.

    Returns:
        Mock object representing OpenAI chat completion response.
    """
    mock_response = Mock()
    mock_response.choices = [Mock(message=Mock(content=content))]
    return mock_response


@pytest.fixture
def openai_embeddings_api_mock():
    """Patch the OpenAI embeddings.create method."""
    with patch("openai.resources.embeddings.Embeddings.create") as mock_create:
        yield mock_create


@pytest.fixture
def openai_chat_api_mock():
    """Patch the OpenAI chat.completions.create method."""
    with patch("openai.resources.chat.completions.Completions.create") as mock_create:
        yield mock_create


@pytest.fixture
def chat_response_factory():
    """Expose ``create_mock_chat_response`` to test modules."""
    return create_mock_chat_response


@pytest.fixture
def openai_embeddings_factory(openai_embeddings_api_mock):
    """Factory for creating OpenAI embeddings API mocks with different scenarios."""

    def _create_mock(  # noqa: ANN202
        scenario="single_success",
        embeddings=None,
        error_message="API Error",
        side_effects=None,
    ):
        """Create a mock based on scenario type.

        Args:
            scenario: Type of mock ('single_success', 'batch_success', 'error',
                'multiple_batches', 'partial_failure')
            embeddings: Custom embeddings to return, or None for defaults
            error_message: Custom error message for error scenarios
            side_effects: Custom side effects list for complex scenarios
        """
        openai_embeddings_api_mock.reset_mock()
        openai_embeddings_api_mock.side_effect = None
        openai_embeddings_api_mock.return_value = None

        if scenario == "single_success":
            mock_embedding = embeddings or [0.1, 0.2, 0.3]
            openai_embeddings_api_mock.return_value = create_mock_openai_response(
                [mock_embedding]
            )
        elif scenario == "batch_success":
            mock_embeddings = embeddings or [
                [0.1, 0.2, 0.3],
                [0.4, 0.5, 0.6],
                [0.7, 0.8, 0.9],
            ]
            openai_embeddings_api_mock.return_value = create_mock_openai_response(
                mock_embeddings
            )
        elif scenario == "error":
            openai_embeddings_api_mock.side_effect = Exception(error_message)
        elif scenario == "multiple_batches":
            openai_embeddings_api_mock.side_effect = side_effects or [
                create_mock_openai_response([[0.1, 0.2, 0.3], [0.4, 0.5, 0.6]]),
                create_mock_openai_response([[0.7, 0.8, 0.9], [1.0, 1.1, 1.2]]),
            ]
        elif scenario == "partial_failure":
            openai_embeddings_api_mock.side_effect = [
                create_mock_openai_response([[0.1, 0.2, 0.3]]),
                Exception("Second batch failed"),
            ]

        return openai_embeddings_api_mock

    return _create_mock


@pytest.fixture
def embedding_service_factory():
    """Factory for creating EmbeddingService instances with different configurations."""

    def _create_service(api_key=None, model=None, dimension=3):  # noqa: ANN202
        """Create an EmbeddingService instance.

        Args:
            api_key: API key to use, defaults to TestConstants.TEST_API_KEY
            model: Model to use, defaults to config
            dimension: Expected vector size, matching the mocked responses
        """
        return EmbeddingService(
            api_key=api_key or TestConstants.TEST_API_KEY,
            model=model,
            dimension=dimension,
        )

    return _create_service


@pytest.fixture
def embedding_service(embedding_service_factory):
    """Default EmbeddingService with test API key for most tests."""
    return embedding_service_factory()


@pytest.fixture
def text_chunker_factory():
    """Factory fixture that creates ``TextChunker`` instances on demand."""
    presets: dict[str, tuple[int, int]] = {
        "small": (
            TestConstants.SMALL_CHUNK_SIZE,
            TestConstants.SMALL_CHUNK_OVERLAP,
        ),
        "default": (
            TestConstants.DEFAULT_CHUNK_SIZE,
            TestConstants.DEFAULT_CHUNK_OVERLAP,
        ),
    }

    def _create_chunker(
        name: str = "default",
        *,
        chunk_size: int | None = None,
        overlap: int | None = None,
    ) -> TextChunker:
        preset_chunk_size, preset_overlap = presets[name]
        return TextChunker(
            chunk_size=preset_chunk_size if chunk_size is None else chunk_size,
            overlap=preset_overlap if overlap is None else overlap,
        )

    return _create_chunker


@pytest.fixture
def text_chunker_small(text_chunker_factory):
    """Text chunker configured for small chunks (100/20)."""
    return text_chunker_factory("small")


@pytest.fixture
def mock_embedding_service():
    return MockEmbeddingService()


@pytest.fixture
def stub_generation_factory():
    def _create(responses=None, default="Test response") -> StubGenerationService:
        return StubGenerationService(responses=responses, default=default)

    return _create


@pytest.fixture
def temp_vector_store(tmp_path) -> SQLiteVectorStore:
    """Create temporary SQLite vector store for testing."""
    return SQLiteVectorStore(tmp_path / "test_store.db", tmp_path / "vectors")


@pytest.fixture
def temp_faiss_store(tmp_path) -> FaissVectorStore:
    """Create temporary FAISS vector store for testing."""
    return FaissVectorStore(tmp_path / "test_store.db", tmp_path / "faiss")


@pytest.fixture(params=["sqlite", "faiss"])
def any_vector_store(request, tmp_path):
    """Each vector store backend in turn."""
    if request.param == "sqlite":
        return SQLiteVectorStore(tmp_path / "store.db", tmp_path / "vectors")
    return FaissVectorStore(tmp_path / "store.db", tmp_path / "faiss")


@pytest.fixture
def sample_text_chunks():
    """Create sample document chunks with text and metadata only (no embeddings)."""
    texts = [
        "Machine learning is a subset of artificial intelligence.",
        "Neural networks are computational models inspired by the brain.",
        "Deep learning uses multiple layers to learn complex patterns.",
        "Supervised learning uses labeled training data.",
        "Unsupervised learning finds patterns in unlabeled data.",
    ]
    return [
        DocumentChunk(
            content=text,
            metadata={
                "source": "ml_notes.txt",
                "source_type": "text",
                "chunk_id": i,
                "start_char": i * 100,
                "end_char": i * 100 + len(text),
                "length": len(text),
            },
        )
        for i, text in enumerate(texts)
    ]


@pytest.fixture
def sample_embedded_chunks(sample_text_chunks, mock_embedding_service):
    """Sample document chunks with mock embeddings attached."""
    for chunk in sample_text_chunks:
        chunk.embedding = mock_embedding_service.get_embedding(chunk.content)
    return sample_text_chunks


@pytest.fixture
def file_ingestor_registry():
    """Registry with the offline ingestors only."""
    registry = IngestorRegistry()
    for ingestor in (
        PDFIngestor(),
        DocxIngestor(),
        TextIngestor(),
        CSVIngestor(),
        JSONIngestor(),
    ):
        registry.register(ingestor)
    return registry


@pytest.fixture
def rag_pipeline_factory(temp_faiss_store, mock_embedding_service, file_ingestor_registry):
    """Factory for creating RAGPipeline instances backed by a temporary store."""

    def _create_pipeline(
        *,
        embedding_service=None,
        chunk_size: int = 200,
        overlap: int = 50,
        max_sources: int = TestConstants.MAX_SOURCES,
        registry: IngestorRegistry | None = None,
    ) -> RAGPipeline:
        return RAGPipeline(
            VectorIndexManager(
                temp_faiss_store, embedding_service or mock_embedding_service
            ),
            registry=registry or file_ingestor_registry,
            chunker=TextChunker(chunk_size=chunk_size, overlap=overlap),
            tracker=UploadTracker(max_sources=max_sources),
            max_workers=4,
        )

    return _create_pipeline


@pytest.fixture
def conversation_manager_factory(mock_embedding_service):
    """Factory for ConversationManager instances over a given store."""

    def _create_conversation_manager(
        vector_store,
        generation_service,
        *,
        embedding_service=None,
        selection: str = "all",
    ) -> ConversationManager:
        return ConversationManager(
            RetrievalOrchestrator(
                Retriever(vector_store, embedding_service or mock_embedding_service),
                HypotheticalAnswerGenerator(generation_service),
                selection=selection,
            ),
            AnswerSynthesizer(generation_service),
        )

    return _create_conversation_manager


@pytest.fixture
def services_factory(
    temp_faiss_store,
    mock_embedding_service,
    rag_pipeline_factory,
    conversation_manager_factory,
):
    """Factory for a fully wired RAGServices with offline collaborators."""

    def _create_services(generation_service=None, **pipeline_kwargs) -> RAGServices:
        generation_service = generation_service or StubGenerationService()
        return RAGServices(
            vector_store=temp_faiss_store,
            embedding_service=mock_embedding_service,
            generation_service=generation_service,
            pipeline=rag_pipeline_factory(**pipeline_kwargs),
            conversation=conversation_manager_factory(
                temp_faiss_store, generation_service
            ),
        )

    return _create_services
