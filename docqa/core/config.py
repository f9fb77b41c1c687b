from typing import Any
import os

from pydantic import PostgresDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    API_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "document-qa"
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"  # Frontend URL

    # Database
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "docqa"
    SQLALCHEMY_DATABASE_URI: PostgresDsn | None = None
    SYNC_SQLALCHEMY_DATABASE_URI: PostgresDsn | None = None

    @field_validator("SQLALCHEMY_DATABASE_URI", mode="before")
    def assemble_db_connection(cls, v: str | None, info: Any) -> Any:
        if isinstance(v, str):
            return v
        return PostgresDsn.build(
            scheme="postgresql+asyncpg",
            username=info.data.get("POSTGRES_USER"),
            password=info.data.get("POSTGRES_PASSWORD"),
            host=info.data.get("POSTGRES_HOST"),
            port=info.data.get("POSTGRES_PORT"),
            path=f"{info.data.get('POSTGRES_DB') or ''}",
        )

    @field_validator("SYNC_SQLALCHEMY_DATABASE_URI", mode="before")
    def assemble_sync_db_connection(cls, v: str | None, info: Any) -> Any:
        if isinstance(v, str):
            return v
        return PostgresDsn.build(
            scheme="postgresql+psycopg2",  # Alembic and scripts
            username=info.data.get("POSTGRES_USER"),
            password=info.data.get("POSTGRES_PASSWORD"),
            host=info.data.get("POSTGRES_HOST"),
            port=info.data.get("POSTGRES_PORT"),
            path=f"{info.data.get('POSTGRES_DB') or ''}",
        )

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: str = "6379"
    REDIS_PASSWORD: str = ""
    REDIS_URL: str | None = None

    @field_validator("REDIS_URL", mode="before")
    def assemble_redis_connection(cls, v: str | None, info: Any) -> Any:
        if isinstance(v, str):
            return v
        password = f":{info.data.get('REDIS_PASSWORD')}@" if info.data.get("REDIS_PASSWORD") else ""
        return f"redis://{password}{info.data.get('REDIS_HOST')}:{info.data.get('REDIS_PORT')}/0"

    # LLM providers
    OPENAI_API_KEY: str | None = None
    GEMINI_API_KEY: str | None = None
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    XAI_API_KEY: str | None = None
    XAI_BASE_URL: str = "https://api.x.ai/v1"
    CHAT_TEMPERATURE: float = 0.7
    DEFAULT_CHAT_MODEL: str = "gemini"

    # Summarization
    SUMMARIZER_STRATEGY: str = "llm"  # "llm" or "frequency"
    ABSTRACT_MODEL: str = "gpt-4o-mini"
    ABSTRACT_MAX_CHUNKS: int = 30
    ABSTRACT_MAX_CHARS: int = 20000
    KEYWORD_MODEL: str = "gpt-4o-mini"
    KEYWORD_BATCH_MAX_CHARS: int = 100000
    MAX_KEYWORDS: int = 30

    # Embeddings
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSIONS: int = 1536
    LOCAL_EMBEDDING_MODEL: str = "sentence-transformers/all-MiniLM-L6-v2"
    LOCAL_EMBEDDING_DIMENSIONS: int = 384
    INGESTION_EMBEDDING_TYPE: str = "openai"  # "openai" or "local"
    EMBEDDING_BATCH_SIZE: int = 50
    EMBEDDING_BATCH_DELAY_MS: int = 100
    EMBEDDING_CACHE_TTL_SECONDS: int = 3600
    EMBEDDING_CACHE_MAX_SIZE: int = 1000

    # Chunking
    CHUNK_SIZE_TOKENS: int = 500
    CHUNK_OVERLAP_TOKENS: int = 100
    CHARS_PER_TOKEN: int = 4
    CHUNK_INSERT_BATCH_SIZE: int = 50

    # Retrieval
    DEFAULT_CHUNK_LIMIT: int = 50
    MAX_CHUNK_LIMIT: int = 200
    HYBRID_SIMILARITY_THRESHOLD: float = 0.2
    HYBRID_SIMILARITY_THRESHOLD_LOCAL: float = 0.05
    HYBRID_VECTOR_WEIGHT: float = 0.7
    HYBRID_TEXT_WEIGHT: float = 0.3

    # Chat limits
    RATE_LIMIT_BACKEND: str = "memory"  # "memory" or "redis"
    BURST_LIMIT: int = 3
    BURST_WINDOW_SECONDS: int = 10
    SUSTAINED_LIMIT: int = 10
    SUSTAINED_WINDOW_SECONDS: int = 60
    RATE_LIMIT_SWEEP_SECONDS: int = 300
    MAX_CONVERSATION_LENGTH: int = 3
    MAX_MESSAGE_LENGTH: int = 1500
    MAX_DOCUMENTS_PER_QUERY: int = 5

    # Moderation; English always comes from better-profanity
    MODERATION_LANGUAGES: list[str] = ["es", "fr", "de", "it", "pt", "nl"]

    # Geolocation
    GEOLOCATION_URL: str = "http://ip-api.com/json"
    GEOLOCATION_TIMEOUT_SECONDS: float = 3.0
    GEOLOCATION_CACHE_SECONDS: int = 86400

    # Processing
    STUCK_THRESHOLD_MINUTES: int = 5
    PROCESSING_METHOD: str = "vps"

    # Auth
    JWT_SECRET: str | None = None
    JWT_ALGORITHMS: list[str] = ["HS256"]
    JWT_AUDIENCE: str | None = None

    # Storage
    STORAGE_BACKEND: str = "local"  # "local" or "supabase"
    STORAGE_BUCKET: str = "user-documents"
    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_ROLE_KEY: str | None = None
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024

    # File ingestion
    DATA_DIR: str = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))), "data")

    DEBUG: bool = False
    CELERY_BROKER_URL: str | None = None
    CELERY_RESULT_BACKEND: str | None = None

    # Test Database - SQLite in-memory for tests
    TEST_DATABASE_URL: str = "sqlite+aiosqlite:///:memory:"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="allow",  # Allow extra fields from environment variables
    )


settings = Settings()
