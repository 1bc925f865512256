"""Creating collections and writing embedded chunks into them."""

from collections.abc import Sequence

from .config import config
from .embeddings import EmbeddingService
from .errors import CollectionExistsError, IndexingError
from .models import DocumentChunk
from .vector_store import VectorStore

logger = config.get_logger(__name__)


class VectorIndexManager:
    """Owns the write path into the vector store."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_service: EmbeddingService,
        batch_size: int | None = None,
    ) -> None:
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        self.batch_size = batch_size or config.EMBEDDING_BATCH_SIZE

    def ensure_collection(self, collection_id: str) -> None:
        """Create the collection unless it already exists.

        A concurrent creator winning the race counts as success.

        Raises:
            IndexingError: If the store fails for any other reason.
        """
        try:
            if self.vector_store.collection_exists(collection_id):
                logger.info("Collection %s already exists", collection_id)
                return
            self.vector_store.create_collection(
                collection_id,
                dimension=self.embedding_service.dimension,
                metric="cosine",
            )
        except CollectionExistsError:
            logger.info("Collection %s already exists", collection_id)
        except Exception as exc:
            logger.exception("Error creating collection %s", collection_id)
            msg = f"Failed to create collection {collection_id}"
            raise IndexingError(msg) from exc
        else:
            logger.info("Collection %s created successfully", collection_id)

    def index(self, chunks: Sequence[DocumentChunk], collection_id: str) -> int:
        """Embed chunks and write them into a collection.

        Args:
            chunks: Chunks to embed; their ``embedding`` is set in place.
            collection_id: Target collection, which must already exist.

        Returns:
            Number of chunks written.

        Raises:
            IndexingError: If embedding or writing fails. Nothing is written
                in that case.
        """
        if not chunks:
            return 0

        try:
            embeddings = self.embedding_service.get_embeddings_batch(
                [chunk.content for chunk in chunks],
                batch_size=self.batch_size,
            )
            if len(embeddings) != len(chunks):
                msg = f"Expected {len(chunks)} embeddings, got {len(embeddings)}"
                raise ValueError(msg)  # noqa: TRY301

            for chunk, embedding in zip(chunks, embeddings, strict=True):
                chunk.embedding = embedding

            written = self.vector_store.upsert(collection_id, chunks)
        except Exception as exc:
            logger.exception("Error indexing chunks into %s", collection_id)
            msg = f"Failed to index document chunks into {collection_id}"
            raise IndexingError(msg) from exc

        logger.info("Indexed %d chunks into collection %s", written, collection_id)
        return written
