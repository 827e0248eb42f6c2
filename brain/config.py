
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    ALLOWED_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "brain"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = "postgres"
    # Full URL wins over the DB_* parts (tests, sqlite, managed databases)
    DATABASE_URL: str = ""
    SKIP_DB: bool = False

    # Embedding provider selection: "openai" or "gemini"
    EMBEDDING_PROVIDER: str = "openai"

    OPENAI_API_KEY: str = ""
    OPENAI_EMBED_MODEL: str = "text-embedding-3-small"

    GEMINI_API_KEY: str = ""
    GEMINI_EMBED_MODEL: str = "gemini-embedding-001"

    EMBED_DIM: int = 768
    EMBED_BATCH_SIZE: int = 100

    # Upload limits
    MAX_FILE_SIZE: int = 25 * 1024 * 1024
    MAX_DOCUMENTS_PER_ORG: int = 50

    # Ingestion pipeline
    CHUNK_SIZE: int = 1000
    CHUNK_OVERLAP: int = 200
    MIN_TEXT_LENGTH: int = 10
    INSERT_BATCH_SIZE: int = 50
    INGEST_WORKERS: int = 2

    # Listing
    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 100

    # Failed documents are only purged on request
    FAILED_RETENTION_HOURS: int = 72

    PLATFORM_OPERATOR_ROLE: str = "saas_super_admin"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

settings = Settings()
