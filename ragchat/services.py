"""Wiring of the ingestion and chat components."""

from dataclasses import dataclass

from .config import config
from .conversation import AnswerSynthesizer, ConversationManager
from .embeddings import EmbeddingService
from .generation import GenerationService
from .hyde import HypotheticalAnswerGenerator
from .indexing import VectorIndexManager
from .ingestors import IngestorRegistry
from .pipeline import RAGPipeline
from .retrieval import RetrievalOrchestrator, Retriever
from .sessions import UploadTracker
from .vector_store import VectorStore, get_vector_store

logger = config.get_logger(__name__)


@dataclass
class RAGServices:
    """Everything a front-end needs to ingest sources and answer questions."""

    vector_store: VectorStore
    embedding_service: EmbeddingService
    generation_service: GenerationService
    pipeline: RAGPipeline
    conversation: ConversationManager

    @property
    def tracker(self) -> UploadTracker:
        return self.pipeline.tracker


def build_services(  # noqa: PLR0913
    *,
    vector_store: VectorStore | None = None,
    embedding_service: EmbeddingService | None = None,
    generation_service: GenerationService | None = None,
    registry: IngestorRegistry | None = None,
    tracker: UploadTracker | None = None,
    api_key: str | None = None,
) -> RAGServices:
    """Build the service graph, defaulting every component from config.

    Returns:
        RAGServices: The wired components.
    """
    vector_store = vector_store or get_vector_store()
    embedding_service = embedding_service or EmbeddingService(api_key=api_key)
    generation_service = generation_service or GenerationService(api_key=api_key)

    pipeline = RAGPipeline(
        VectorIndexManager(vector_store, embedding_service),
        registry=registry,
        tracker=tracker,
    )
    conversation = ConversationManager(
        RetrievalOrchestrator(
            Retriever(vector_store, embedding_service),
            HypotheticalAnswerGenerator(generation_service),
        ),
        AnswerSynthesizer(generation_service),
    )

    logger.info("Using %s vector storage", vector_store.backend)
    return RAGServices(
        vector_store=vector_store,
        embedding_service=embedding_service,
        generation_service=generation_service,
        pipeline=pipeline,
        conversation=conversation,
    )
