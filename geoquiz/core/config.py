from __future__ import annotations

from typing import List, Any
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AnyUrl, AliasChoices, field_validator


class Settings(BaseSettings):
    # .env is optional; unknown keys are rejected to catch typos
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="forbid",
    )

    # General
    APP_NAME: str = "GeoQuiz Backend"
    API_V1_PREFIX: str = "/api/v1"
    APP_ENV: str = Field(
        "dev",
        validation_alias=AliasChoices("APP_ENV", "app_env"),
        description="Application environment: dev|staging|prod",
    )
    BACKEND_PORT: int = Field(
        8000,
        validation_alias=AliasChoices("BACKEND_PORT", "app_port"),
        description="Backend port to bind",
    )
    LOG_LEVEL: str = Field(
        "INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "log_level"),
    )

    # Supabase
    SUPABASE_URL: AnyUrl = Field(
        "http://localhost:54321",
        validation_alias=AliasChoices("SUPABASE_URL", "supabase_url"),
        description="Your Supabase project URL",
    )
    SUPABASE_SERVICE_ROLE_KEY: str = Field(
        "",
        validation_alias=AliasChoices("SUPABASE_SERVICE_ROLE_KEY", "supabase_service_role_key"),
        description="Service role key (server-side)",
    )

    # Redis (finished match archive)
    REDIS_URL: str = Field(
        "redis://localhost:6379/0",
        validation_alias=AliasChoices("REDIS_URL", "redis_url"),
        description="redis:// or rediss:// connection URL",
    )
    MATCH_ARCHIVE_TTL_SEC: int = 6 * 60 * 60

    # Auth
    JWT_SECRET: str = Field(
        "dev-jwt-secret-geoquiz",
        validation_alias=AliasChoices("JWT_SECRET", "jwt_secret"),
    )
    JWT_ALGORITHM: str = "HS256"

    # Game client
    CLIENT_BASE_URL: str = Field(
        "http://localhost:8000",
        validation_alias=AliasChoices("CLIENT_BASE_URL", "client_base_url"),
        description="Backend origin the game client talks to",
    )
    CLIENT_TIMEOUT_SEC: float = 10.0

    # Solo engine
    SIMILARITY_THRESHOLD: float = Field(
        0.75,
        ge=0.0,
        le=1.0,
        description="Minimum similarity for a typed answer to count as correct",
    )
    EASY_DURATION_SEC: int = 20
    MEDIUM_DURATION_SEC: int = 15
    HARD_DURATION_SEC: int = 10
    RESULT_DWELL_SEC: float = 1.5
    DEFAULT_QUESTION_COUNT: int = 10
    MAX_QUESTION_COUNT: int = 20

    # Multiplayer coordinator
    MATCH_QUESTION_COUNT: int = 10
    MATCH_QUESTION_DURATION_SEC: float = 15.0
    MATCH_DEADLINE_GRACE_SEC: float = 1.0
    RESULTS_DWELL_SEC: float = 3.0
    ANSWER_RATE_LIMIT: int = 3
    ANSWER_RATE_WINDOW_MS: int = 1000
    MIN_ANSWER_TIME_MS: int = 100

    # CORS origins
    FRONTEND_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    @field_validator("FRONTEND_ORIGINS", mode="before")
    @classmethod
    def _parse_origins(cls, v: Any) -> Any:
        """
        Accepts FRONTEND_ORIGINS in .env as:
        - a JSON array: ["http://localhost:5173","http://localhost:3000"]
        - or a plain string: http://localhost:5173,http://localhost:3000
        - or with ; as the separator
        """
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("[") and s.endswith("]"):
                import json
                try:
                    return json.loads(s)
                except ValueError:
                    # malformed JSON, fall back to split
                    pass
            return [item.strip() for item in s.replace(";", ",").split(",") if item.strip()]
        return v

    def duration_for(self, difficulty: str) -> int:
        """Per-question countdown in seconds for a difficulty tier."""
        durations = {
            "easy": self.EASY_DURATION_SEC,
            "medium": self.MEDIUM_DURATION_SEC,
            "hard": self.HARD_DURATION_SEC,
        }
        return durations.get(str(difficulty), self.MEDIUM_DURATION_SEC)


settings = Settings()
