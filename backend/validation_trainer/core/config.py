from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BACKEND_DIR = Path(__file__).resolve().parents[2]
ROOT_DIR = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    slow_request_ms: int = Field(default=1200, alias="SLOW_REQUEST_MS")
    observability_recent_error_limit: int = Field(
        default=20, alias="OBSERVABILITY_RECENT_ERROR_LIMIT"
    )

    llm_api_key: str | None = Field(default=None, alias="LLM_API_KEY")
    llm_model: str = Field(default="gpt-5", alias="LLM_MODEL")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1", alias="OPENAI_BASE_URL"
    )
    llm_timeout_seconds: float = Field(default=30.0, alias="LLM_TIMEOUT_SECONDS")
    transcribe_model: str = Field(default="whisper-1", alias="TRANSCRIBE_MODEL")
    transcribe_language: str = Field(default="en", alias="TRANSCRIBE_LANGUAGE")

    progress_store_dir: str = Field(
        default=str(ROOT_DIR / ".progress"), alias="PROGRESS_STORE_DIR"
    )
    progress_storage_key: str = Field(
        default="validation-progress", alias="PROGRESS_STORAGE_KEY"
    )
    progress_session_limit: int = Field(default=50, alias="PROGRESS_SESSION_LIMIT")
    phrase_catalog_path: str | None = Field(default=None, alias="PHRASE_CATALOG_PATH")

    analysis_max_attempts: int = Field(default=3, alias="ANALYSIS_MAX_ATTEMPTS")
    analysis_backoff_seconds: float = Field(
        default=0.5, alias="ANALYSIS_BACKOFF_SECONDS"
    )

    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")
    cors_origin_regex: str = Field(
        default=r"https://.*\.vercel\.app", alias="CORS_ORIGIN_REGEX"
    )

    model_config = SettingsConfigDict(
        env_file=(str(BACKEND_DIR / ".env"), str(ROOT_DIR / ".env")),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def progress_store_path(self) -> Path:
        return Path(self.progress_store_dir).expanduser()

    @field_validator(
        "app_env",
        "log_level",
        "llm_api_key",
        "llm_model",
        "openai_base_url",
        "transcribe_model",
        "transcribe_language",
        "progress_store_dir",
        "progress_storage_key",
        "phrase_catalog_path",
        "cors_origins",
        "cors_origin_regex",
        mode="before",
    )
    @classmethod
    def strip_string_values(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("llm_api_key", "phrase_catalog_path", mode="before")
    @classmethod
    def empty_string_as_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("slow_request_ms", mode="before")
    @classmethod
    def normalize_slow_request_ms(cls, value):
        try:
            normalized = int(value)
        except (TypeError, ValueError):
            return 1200
        return max(1, normalized)

    @field_validator("observability_recent_error_limit", mode="before")
    @classmethod
    def normalize_recent_error_limit(cls, value):
        try:
            normalized = int(value)
        except (TypeError, ValueError):
            return 20
        return max(1, normalized)

    @field_validator("progress_session_limit", mode="before")
    @classmethod
    def normalize_session_limit(cls, value):
        try:
            normalized = int(value)
        except (TypeError, ValueError):
            return 50
        return max(1, normalized)

    @field_validator("analysis_max_attempts", mode="before")
    @classmethod
    def normalize_analysis_max_attempts(cls, value):
        try:
            normalized = int(value)
        except (TypeError, ValueError):
            return 3
        return max(1, normalized)

    @field_validator("analysis_backoff_seconds", "llm_timeout_seconds", mode="before")
    @classmethod
    def normalize_seconds(cls, value, info):
        default = 0.5 if info.field_name == "analysis_backoff_seconds" else 30.0
        try:
            normalized = float(value)
        except (TypeError, ValueError):
            return default
        return max(0.0, normalized)

    @model_validator(mode="after")
    def enforce_prod_llm_constraints(self):
        if self.app_env.lower() == "production" and not self.llm_api_key:
            raise ValueError("LLM_API_KEY must be set in production")
        return self


settings = Settings()
