"""RAGChat - retrieval-augmented chat over uploaded documents with HyDE retrieval."""

from .conversation import AnswerSynthesizer, ConversationManager
from .document_processing import TextChunker
from .embeddings import EmbeddingService
from .generation import GenerationService
from .hyde import HypotheticalAnswerGenerator
from .indexing import VectorIndexManager
from .ingestors import IngestorRegistry, default_registry
from .models import (
    ChatAnswer,
    ConversationTurn,
    DocumentChunk,
    DocumentRecord,
    RetrievedResult,
    SourceInput,
    SourceType,
)
from .pipeline import RAGPipeline
from .retrieval import CollectionSelection, RetrievalOrchestrator, RetrievalOutcome, Retriever
from .services import RAGServices, build_services
from .sessions import UploadTracker
from .vector_store import FaissVectorStore, SQLiteVectorStore, get_vector_store

__all__ = [
    "AnswerSynthesizer",
    "ChatAnswer",
    "CollectionSelection",
    "ConversationManager",
    "ConversationTurn",
    "DocumentChunk",
    "DocumentRecord",
    "EmbeddingService",
    "FaissVectorStore",
    "GenerationService",
    "HypotheticalAnswerGenerator",
    "IngestorRegistry",
    "RAGPipeline",
    "RAGServices",
    "RetrievalOrchestrator",
    "RetrievalOutcome",
    "RetrievedResult",
    "Retriever",
    "SQLiteVectorStore",
    "SourceInput",
    "SourceType",
    "TextChunker",
    "UploadTracker",
    "VectorIndexManager",
    "build_services",
    "default_registry",
    "get_vector_store",
]
