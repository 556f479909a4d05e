# synapse/config.py
from typing import Annotated, List, Optional
from pydantic_settings import BaseSettings, NoDecode
from pydantic import Field, field_validator

class Settings(BaseSettings):
    # Gemini
    gemini_api_key: str = Field(...)
    gemini_model: str = Field("gemini-pro")
    gemini_base: str = Field("https://generativelanguage.googleapis.com/v1beta")
    model_timeout: float = Field(60.0)           # seconds, applied to every generation call
    max_prompt_chars: int = Field(10_000)        # document text prefix sent to the model

    # Analysis policy
    auto_analyze: bool = Field(True)             # enqueue analysis when a document is created
    allow_reanalysis: bool = Field(False)        # explicit callable may re-run analyzed/failed docs

    # Celery / Redis
    redis_url: str = Field("redis://localhost:6379/0")
    celery_queue: str = Field("analysis_queue")

    # Storage
    storage_backend: str = Field("local")        # "local" or "minio"
    upload_dir: str = Field(".data")
    max_upload_size: int = Field(50 * 1024 * 1024)
    allowed_extensions: Annotated[List[str], NoDecode] = Field([])    # empty = accept everything, the pipeline decides
    minio_endpoint: Optional[str] = Field(None)
    minio_access_key: Optional[str] = Field(None)
    minio_secret_key: Optional[str] = Field(None)
    minio_bucket: str = Field("documents")
    minio_secure: bool = Field(False)

    # Auth
    secret_key: str = Field("change_me")
    jwt_algorithm: str = Field("HS256")

    # Chat
    ai_chat_id: str = Field("ai-assistant")
    chat_rate_limit: int = Field(20)             # requests per period per user, 0 disables
    chat_rate_period: int = Field(60)

    # CORS
    cors_origins: Annotated[List[str], NoDecode] = Field(["*"])

    host: str = Field("0.0.0.0")
    port: int = Field(8000)
    log_level: str = Field("INFO")

    # DB
    database_url: str = Field("postgresql+asyncpg://localhost:5432/synapse")
    create_tables: bool = Field(True)

    # Pydantic v2 config
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("gemini_api_key", mode="before")
    def _require_api_key(cls, v):
        if v is None or not str(v).strip():
            raise ValueError("GEMINI_API_KEY must be set")
        return str(v).strip()

    # ---- field validators (pydantic v2 style) ----
    @field_validator("allowed_extensions", mode="before")
    def _split_allowed_extensions(cls, v):
        """
        Allows ALLOWED_EXTENSIONS as comma-separated string in env, or as a list.
        Example: '.pdf,.txt'
        """
        if isinstance(v, str):
            return [s.strip().lower() for s in v.split(",") if s.strip()]
        return v

    @field_validator("cors_origins", mode="before")
    def _split_cors_origins(cls, v):
        """
        Allows CORS_ORIGINS as comma-separated string in env, or as a list.
        """
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("storage_backend", mode="before")
    def _validate_storage_backend(cls, v):
        v = str(v or "local").strip().lower()
        if v not in ("local", "minio"):
            raise ValueError("STORAGE_BACKEND must be 'local' or 'minio'")
        return v

    @field_validator("max_prompt_chars", "max_upload_size", mode="before")
    def _validate_positive(cls, v):
        """
        Accepts the env value as string or int and ensures it's a positive int.
        """
        if isinstance(v, str) and v.isdigit():
            v = int(v)
        if not isinstance(v, int) or v <= 0:
            raise ValueError("value must be a positive integer")
        return v

settings = Settings()
