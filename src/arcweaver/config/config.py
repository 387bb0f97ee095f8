# src/arcweaver/config/config.py
"""Configuration system for Arcweaver."""

from __future__ import annotations

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SectionSettings(BaseSettings):
    """Config section bound to environment variables by field alias.

    Fields can still be passed by name, which is how tests and callers
    build explicit sections.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        populate_by_name=True,
        env_ignore_empty=True,
        validate_default=True,
    )


class DatabaseConfig(SectionSettings):
    """Database configuration settings."""

    database_url: str = Field(default="", validation_alias="ARCWEAVER_DATABASE_URL")
    postgres_user: str = Field(default="arcweaver", validation_alias="POSTGRES_USER")
    postgres_password: str = Field(
        default="arcweaver_password", validation_alias="POSTGRES_PASSWORD"
    )
    postgres_db: str = Field(default="arcweaver", validation_alias="POSTGRES_DB")
    postgres_host: str = Field(default="localhost", validation_alias="POSTGRES_HOST")
    postgres_port: str = Field(default="5432", validation_alias="POSTGRES_PORT")
    echo_sql: bool = Field(default=False, validation_alias="ARCWEAVER_ECHO_SQL")

    @property
    def postgres_url(self) -> str:
        """Generate PostgreSQL connection URL with psycopg driver."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg://{self.postgres_user}:{self.postgres_password}@"
            f"{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


class LLMConfig(SectionSettings):
    """LLM provider configuration."""

    api_base: str = Field(default="http://localhost:8080/v1", validation_alias="OPENAI_API_BASE")
    api_key: str = Field(default="sk-1234", validation_alias="OPENAI_API_KEY")
    model: str = Field(default="openai/qwen3-a3b", validation_alias="ARCWEAVER_MODEL")
    # Default sampling temperature for text generation. If not set, falls back to 0.7.
    temperature: float | None = Field(default=None, validation_alias="TEMPERATURE")
    request_timeout: float = Field(default=600.0, validation_alias="LLM_REQUEST_TIMEOUT")


class SystemConfig(SectionSettings):
    """System configuration settings."""

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str = Field(default="./arcweaver_log.txt", validation_alias="ARCWEAVER_LOG_FILE")
    port: int = Field(default=8000, validation_alias="PORT")


class RetryConfig(SectionSettings):
    """Retry configuration settings."""

    retry_attempts: int = Field(default=3, validation_alias="RETRY_ATTEMPTS")
    retry_backoff: float = Field(default=0.5, validation_alias="RETRY_BACKOFF")


class PlannerConfig(SectionSettings):
    """Act planning policy."""

    # Skip planning while more than this many planned chapters remain ahead.
    act_planning_threshold: int = Field(
        default=10, ge=0, validation_alias="ACT_PLANNING_THRESHOLD"
    )
    context_window: int = Field(default=10, ge=1, validation_alias="ACT_CONTEXT_WINDOW")
    temperature: float | None = Field(default=None, validation_alias="ACT_PLANNER_TEMPERATURE")


DEFAULT_EVENT_MARKERS: tuple[str, ...] = (
    "发现",
    "死亡",
    "牺牲",
    "背叛",
    "结盟",
    "联盟",
    "决战",
    "觉醒",
    "揭露",
    "真相",
    "复仇",
    "重逢",
    "失去",
    "获得",
    "突破",
)


class LeakageConfig(SectionSettings):
    """Plot-leakage lint thresholds.

    The defaults have not been calibrated against real chapters; treat them
    as starting points.
    """

    fuzzy_threshold: float = Field(
        default=0.7, ge=0.0, le=1.0, validation_alias="LEAKAGE_FUZZY_THRESHOLD"
    )
    flag_threshold: int = Field(default=3, ge=1, validation_alias="LEAKAGE_FLAG_THRESHOLD")
    max_colon_phrase_length: int = Field(
        default=20, ge=1, validation_alias="LEAKAGE_MAX_COLON_PHRASE"
    )
    max_clause_length: int = Field(default=15, ge=1, validation_alias="LEAKAGE_MAX_CLAUSE")
    event_markers: tuple[str, ...] = Field(
        default=DEFAULT_EVENT_MARKERS, validation_alias="LEAKAGE_EVENT_MARKERS"
    )


class ControllerConfig(SectionSettings):
    """Batch generation controller timing and cadence."""

    revision_interval: int = Field(default=5, ge=1, validation_alias="OUTLINE_REVISION_INTERVAL")
    success_reset_delay: float = Field(
        default=1.0, ge=0.0, validation_alias="BATCH_SUCCESS_RESET_DELAY"
    )
    error_reset_delay: float = Field(
        default=3.0, ge=0.0, validation_alias="BATCH_ERROR_RESET_DELAY"
    )


class ArcweaverConfig(BaseModel):
    """Main configuration class."""

    model_config = ConfigDict(extra="ignore")

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    system: SystemConfig = Field(default_factory=SystemConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    planner: PlannerConfig = Field(default_factory=PlannerConfig)
    leakage: LeakageConfig = Field(default_factory=LeakageConfig)
    controller: ControllerConfig = Field(default_factory=ControllerConfig)

    @classmethod
    def load(cls) -> ArcweaverConfig:
        """Load every section from the current environment."""
        return cls()


# Global configuration instance
load_dotenv()
config = ArcweaverConfig.load()
