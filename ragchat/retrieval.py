"""Similarity search over collections, with optional HyDE query expansion."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

import numpy as np

from .config import config
from .embeddings import EmbeddingService
from .errors import RetrievalError
from .hyde import HypotheticalAnswerGenerator
from .models import ConversationTurn, RetrievedResult
from .vector_store import VectorStore

logger = config.get_logger(__name__)


class CollectionSelection(StrEnum):
    """Which of a session's collections a question is searched against."""

    FIRST = "first"
    LATEST = "latest"
    ALL = "all"


@dataclass(slots=True)
class RetrievalOutcome:
    """Results of one retrieval together with the query that produced them."""

    query: str
    results: list[RetrievedResult] = field(default_factory=list)
    hypothetical_answer: str | None = None

    @property
    def found(self) -> bool:
        return bool(self.results)


class Retriever:
    """Embeds a query and searches one or more collections."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_service: EmbeddingService,
        *,
        top_k: int | None = None,
        min_score: float | None = None,
    ) -> None:
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        self.top_k = top_k or config.RETRIEVAL_TOP_K
        self.min_score = min_score if min_score is not None else config.MIN_RELEVANCE_SCORE

    def _search_collection(
        self,
        query_embedding: np.ndarray,
        collection_id: str,
        k: int,
    ) -> list[RetrievedResult]:
        results = self.vector_store.search(collection_id, query_embedding, top_k=k)
        kept = [result for result in results if result.score >= self.min_score]
        if len(kept) < len(results):
            logger.info(
                "Dropped %d results below relevance %.2f from %s",
                len(results) - len(kept),
                self.min_score,
                collection_id,
            )
        return kept

    def search_many(
        self,
        query: str,
        collection_ids: Sequence[str],
        k: int | None = None,
    ) -> list[RetrievedResult]:
        """Search several collections with a single query embedding.

        Args:
            query: Text to embed and search with.
            collection_ids: Collections to search.
            k: Maximum number of merged results.

        Returns:
            Up to ``k`` results across all collections, best first.

        Raises:
            RetrievalError: If the store or the embedding service fails,
                including an unknown collection id.
        """
        k = k or self.top_k
        try:
            populated = [
                collection_id
                for collection_id in collection_ids
                if self.vector_store.count(collection_id) > 0
            ]
            if not populated:
                logger.info("No populated collections to search")
                return []

            query_embedding = self.embedding_service.get_embedding(query)
            merged: list[RetrievedResult] = []
            for collection_id in populated:
                merged.extend(self._search_collection(query_embedding, collection_id, k))
        except Exception as exc:
            logger.exception("Error searching collections %s", list(collection_ids))
            msg = "Failed to search document collections"
            raise RetrievalError(msg) from exc

        merged.sort(key=lambda result: result.score, reverse=True)
        results = merged[:k]
        logger.info(
            "Retrieved %d chunks from %d collection(s)", len(results), len(populated)
        )
        return results

    def search(
        self,
        query: str,
        collection_id: str,
        k: int | None = None,
    ) -> list[RetrievedResult]:
        """Search one collection.

        Returns:
            Up to ``k`` results, best first; empty for an empty collection.
        """
        return self.search_many(query, [collection_id], k)


class RetrievalOrchestrator:
    """Chooses between direct and HyDE retrieval for a question."""

    def __init__(
        self,
        retriever: Retriever,
        hyde_generator: HypotheticalAnswerGenerator,
        selection: CollectionSelection | str | None = None,
    ) -> None:
        self.retriever = retriever
        self.hyde_generator = hyde_generator
        self.selection = CollectionSelection(selection or config.COLLECTION_SELECTION)

    def select_collections(self, collection_ids: Sequence[str]) -> list[str]:
        """Apply the selection policy to a session's collections, oldest first.

        Returns:
            The collection ids to search.
        """
        ids = list(dict.fromkeys(collection_ids))
        if not ids:
            return []
        if self.selection is CollectionSelection.FIRST:
            return ids[:1]
        if self.selection is CollectionSelection.LATEST:
            return ids[-1:]
        return ids

    def retrieve(
        self,
        question: str,
        collection_ids: Sequence[str],
        history: Sequence[ConversationTurn] = (),
        *,
        use_hyde: bool = True,
    ) -> RetrievalOutcome:
        """Retrieve context for a question.

        Returns:
            The outcome; ``hypothetical_answer`` is set in HyDE mode.

        Raises:
            RetrievalError: If searching fails.
        """
        hypothetical_answer = None
        query = question
        if use_hyde:
            hypothetical_answer = self.hyde_generator.generate(question, history)
            query = hypothetical_answer

        results = self.retriever.search_many(query, self.select_collections(collection_ids))
        logger.info(
            "Retrieval (%s) returned %d results",
            "hyde" if use_hyde else "direct",
            len(results),
        )
        return RetrievalOutcome(
            query=query,
            results=results,
            hypothetical_answer=hypothetical_answer,
        )
