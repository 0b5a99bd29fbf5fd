"""Application configuration and environment-driven settings.

Defines the Settings class based on pydantic-settings to centralize configuration for:
- OpenAI API key and the models used for answers, classification, reranking and embeddings
- Data stores (PostgreSQL, Redis) and cache defaults
- Ingestion parameters (chunk size, embedding batch size)
- Retrieval/generation knobs
- Job queue worker defaults
- Optional observability (Langfuse) and log level

A warning is logged if OPENAI_API_KEY is not set when not running in Docker.
"""
import logging
import os
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Strongly-typed application settings loaded from environment variables.

    Uses pydantic-settings to populate fields from a .env file or process env.
    See individual field names for semantics and safe defaults.
    """
    # Required
    OPENAI_API_KEY: str = Field(default="", description="OpenAI API key")

    # Models
    OPENAI_MODEL: str = "gpt-4o"  # answer generation
    CLASSIFIER_MODEL: str = "gpt-4o-mini"
    RERANKER_MODEL: str = "gpt-4o-mini"
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"  # 1536 dims
    OPENAI_TIMEOUT_SECONDS: float = 30.0
    OPENAI_MAX_RETRIES: int = 2  # chat completions only; embeddings never retry

    # Data stores
    DATABASE_URL: str = "postgresql+psycopg2://rag_user:rag_pass@db:5432/rag_db"
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_ENABLED: bool = True
    CACHE_TTL_SECONDS: int = 600

    # Ingestion
    CHUNK_MAX_CHARS: int = 3200
    EMBEDDING_BATCH_SIZE: int = 10

    # Retrieval/Generation
    MATCH_COUNT: int = 20  # per channel
    RERANKER_ENABLED: bool = True
    RERANK_MAX_CHARS: int = 1000
    CONTEXT_CHUNKS: int = 10
    MAX_OUTPUT_TOKENS: int = 2000

    # Job queue
    WORKER_JOB_TYPES: str = "document_processing"
    JOB_LEASE_SECONDS: int = 900

    # Observability (optional)
    LOG_LEVEL: str = "INFO"
    LANGFUSE_HOST: str = ""
    LANGFUSE_PUBLIC_KEY: str = ""
    LANGFUSE_SECRET_KEY: str = ""

    # Derived
    @property
    def EMBEDDING_DIM(self) -> int:
        """Embedding dimension for the configured embedding model.

        Returns:
            int: The vector dimension inferred from OPENAI_EMBEDDING_MODEL.
        """
        model = self.OPENAI_EMBEDDING_MODEL.lower()
        if "text-embedding-3-large" in model:
            return 3072
        # text-embedding-3-small, ada-002
        return 1536

    @property
    def worker_job_types(self) -> List[str]:
        """Job types a worker claims when none are given explicitly."""
        return [t.strip() for t in self.WORKER_JOB_TYPES.split(",") if t.strip()]

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()

# Inside the API/worker containers the key must be set; locally we only warn
if os.environ.get("RUNNING_IN_DOCKER", "0") == "0" and not settings.OPENAI_API_KEY:
    logger.warning("OPENAI_API_KEY not set. Set it in .env before running ingestion or queries.")
