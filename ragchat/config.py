"""Configuration management for the RAGChat application."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)


class Config:
    """Application configuration loaded from environment variables."""

    # OpenAI Configuration
    @classmethod
    def get_openai_api_key(cls) -> str:
        """Get OpenAI API key from environment variables.

        Returns:
            OpenAI API key from environment or empty string if not set.
        """
        return os.getenv("OPENAI_API_KEY", "")

    OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")
    REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "30.0"))
    OPENAI_MAX_RETRIES: int = int(os.getenv("OPENAI_MAX_RETRIES", "2"))

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    OPENAI_LOG_LEVEL: str = os.getenv("OPENAI_LOG_LEVEL", "WARNING").upper()

    # Chunking Configuration
    CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", "1000"))
    CHUNK_OVERLAP: int = int(os.getenv("CHUNK_OVERLAP", "200"))

    # Embedding Configuration
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    EMBEDDING_DIMENSION: int = int(os.getenv("EMBEDDING_DIMENSION", "1536"))
    EMBEDDING_BATCH_SIZE: int = int(os.getenv("EMBEDDING_BATCH_SIZE", "100"))

    # Chat Model Configuration
    CHAT_MODEL: str = os.getenv("CHAT_MODEL", "gpt-4.1-nano-2025-04-14")
    CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "1024"))
    CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.7"))
    ANSWER_HISTORY_TURNS: int = int(os.getenv("ANSWER_HISTORY_TURNS", "6"))

    # Hypothetical Answer (HyDE) Configuration
    HYDE_MAX_TOKENS: int = int(os.getenv("HYDE_MAX_TOKENS", "300"))
    HYDE_TEMPERATURE: float = float(os.getenv("HYDE_TEMPERATURE", "0.7"))
    HYDE_MIN_LENGTH: int = int(os.getenv("HYDE_MIN_LENGTH", "20"))
    HYDE_HISTORY_TURNS: int = int(os.getenv("HYDE_HISTORY_TURNS", "4"))

    # Retrieval Configuration
    RETRIEVAL_TOP_K: int = int(os.getenv("RETRIEVAL_TOP_K", "5"))
    MIN_RELEVANCE_SCORE: float = float(os.getenv("MIN_RELEVANCE_SCORE", "0.0"))
    COLLECTION_SELECTION: str = os.getenv("COLLECTION_SELECTION", "all").lower()
    SOURCE_PREVIEW_LENGTH: int = int(os.getenv("SOURCE_PREVIEW_LENGTH", "200"))

    # Vector Store Configuration
    VECTOR_BACKEND: str = os.getenv("VECTOR_BACKEND", "faiss").lower()
    VECTOR_STORE_DB_PATH: Path = Path(
        os.getenv("VECTOR_STORE_DB_PATH", "data/vector_store.db")
    )
    VECTOR_STORE_DIR: Path = Path(os.getenv("VECTOR_STORE_DIR", "data/vectors"))
    FAISS_INDEX_DIR: Path = Path(os.getenv("FAISS_INDEX_DIR", "data/faiss"))

    # Ingestion Configuration
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))
    MAX_TEXT_CHARS: int = int(os.getenv("MAX_TEXT_CHARS", "200000"))
    MAX_SOURCES_PER_SESSION: int = int(os.getenv("MAX_SOURCES_PER_SESSION", "2"))
    URL_FETCH_TIMEOUT: float = float(os.getenv("URL_FETCH_TIMEOUT", "15.0"))
    URL_FETCH_RETRIES: int = int(os.getenv("URL_FETCH_RETRIES", "3"))
    INGEST_MAX_WORKERS: int = int(os.getenv("INGEST_MAX_WORKERS", "4"))

    # API Header Configuration
    API_USER_AGENT: str = os.getenv("API_USER_AGENT", "RAGChat/1.0")
    API_TEST_HEADER_NAME: str | None = os.getenv(
        "API_TEST_HEADER_NAME",
        "X-RAGChat-Test-Token",
    )
    API_TEST_HEADER_VALUE: str | None = os.getenv(
        "API_TEST_HEADER_VALUE",
        "allow",
    )

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration values.

        Raises:
            ValueError: If OPENAI_API_KEY is not set.
        """
        if not cls.get_openai_api_key():
            msg = (
                "OPENAI_API_KEY is required. Please set it in .env file or environment."
            )
            raise ValueError(msg)

    @classmethod
    def setup_logging(cls) -> None:
        """Setup basic logging configuration.

        Configure logging once at application startup with:
        - Console output for all levels
        - Simple, readable format
        - Configurable level via environment variable
        """
        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )

        # HTTP client libraries follow the OpenAI level
        third_party_level = getattr(logging, cls.OPENAI_LOG_LEVEL, logging.WARNING)
        for name in ("openai", "httpx"):
            logging.getLogger(name).setLevel(third_party_level)

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger with the specified name.

        Args:
            name: Logger name (typically __name__)

        Returns:
            Logger instance
        """
        return logging.getLogger(name)

    @classmethod
    def get_api_headers(cls) -> dict[str, str]:
        """Build default headers for outbound API calls.

        Returns:
            Mapping of header names to values used on outbound HTTP requests.
        """
        headers: dict[str, str] = {}

        if cls.API_USER_AGENT:
            headers["User-Agent"] = cls.API_USER_AGENT

        if cls.API_TEST_HEADER_NAME and cls.API_TEST_HEADER_VALUE:
            headers[cls.API_TEST_HEADER_NAME] = cls.API_TEST_HEADER_VALUE

        return headers


config = Config()
