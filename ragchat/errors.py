"""Exception hierarchy shared by the ingestion and chat pipelines."""


class RAGChatError(Exception):
    """Base class for all application errors."""


class InputValidationError(RAGChatError, ValueError):
    """User input was rejected before any external call was made."""


class UploadLimitError(InputValidationError):
    """The session already holds the maximum number of sources."""


class IngestionError(RAGChatError, RuntimeError):
    """A source could not be fetched or parsed."""


class NoContentError(IngestionError):
    """A source was read successfully but produced no text."""


class IndexingError(RAGChatError, RuntimeError):
    """Embedding or writing chunks into a collection failed."""


class RetrievalError(RAGChatError, RuntimeError):
    """Searching a collection failed."""


class GenerationError(RAGChatError, RuntimeError):
    """The generative model failed to produce the final answer."""


class CollectionExistsError(RAGChatError, ValueError):
    """A collection with the requested id already exists."""


class CollectionNotFoundError(RAGChatError, KeyError):
    """No collection exists with the requested id."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""
