import pathlib
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from booksource.util.exceptions import ConfigurationError


class DBSettings(BaseModel):
    sqlite_path: str = "quota.sqlite"
    """Relative path to the sqlite database given the config directory. If absolute, it ignores the config dir location."""
    use_postgres: bool = False
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "booksource"
    postgres_user: str = "booksource"
    postgres_password: str = "password"
    postgres_ssl_mode: str = "prefer"

    pool_size: int = 10
    """SQLAlchemy connection pool size (number of connections to maintain in pool)"""
    max_overflow: int = 20
    """Maximum number of overflow connections beyond pool_size"""
    pool_timeout: int = 30
    """Timeout (seconds) to wait for a connection from the pool"""
    pool_pre_ping: bool = True
    """Enable ping to detect stale connections before using them"""


class ApplicationSettings(BaseModel):
    debug: bool = False
    config_dir: str = "/config"
    version: str = "local"
    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR)"""
    log_format: str = "text"
    """Log format: 'text' for human-readable, 'json' for machine-readable"""
    log_file: str | None = None
    """Optional log file path (relative to config_dir/logs/). If not set, logs to stdout only"""


class QuotaSettings(BaseModel):
    backend: Literal["memory", "sql"] = "memory"
    """Where daily counters live. 'sql' uses the database configured under db."""

    daily_limits: dict[str, int] = Field(
        default_factory=lambda: {"isbndb": 15000, "gemini": 1500, "xai": 1000}
    )
    """Daily call budget per metered provider key"""

    soft_ceiling: float = 0.70
    """Share of the daily limit above which only high-priority callers are admitted"""

    hard_ceiling: float = 0.85
    """Share of the daily limit above which every caller is denied"""

    availability_timeout: float = 5.0
    """Seconds a single provider availability check may take before it is excluded"""

    @model_validator(mode="after")
    def _check_ceilings(self) -> "QuotaSettings":
        if not (0 < self.soft_ceiling <= 1 and 0 < self.hard_ceiling <= 1):
            raise ConfigurationError("Quota ceilings must be in (0, 1]")
        if self.soft_ceiling > self.hard_ceiling:
            raise ConfigurationError(
                f"soft_ceiling ({self.soft_ceiling}) must not exceed hard_ceiling ({self.hard_ceiling})"
            )
        for key, limit in self.daily_limits.items():
            if limit < 0:
                raise ConfigurationError(f"Daily limit for '{key}' must be non-negative")
        return self


class OrchestrationSettings(BaseModel):
    isbn_resolution_timeout: float = 15.0
    cover_fetch_timeout: float = 10.0
    book_generation_timeout: float = 60.0
    default_provider_timeout: float = 10.0
    """Per-provider timeout (seconds) for orchestrators without a dedicated setting"""

    resolution_threshold: float = 0.70
    """Minimum title/author similarity for accepting a resolved ISBN"""

    deduplication_threshold: float = 0.6
    """Title similarity at which two generated books are treated as the same book"""

    isbn_provider_order: list[str] = Field(default_factory=list)
    """Explicit ISBN resolution order. Empty = paid providers first, then registration order"""
    cover_provider_order: list[str] = Field(default_factory=list)
    """Ranking within the free and paid cover tiers. Free providers always go first"""
    generation_provider_order: list[str] = Field(default_factory=lambda: ["gemini", "xai"])
    metadata_provider_order: list[str] = Field(default_factory=list)
    external_id_provider_order: list[str] = Field(default_factory=list)

    result_cache_ttl: int = 3600
    """TTL for cached orchestrator results (default: 1 hour)"""
    result_cache_maxsize: int | None = 10000


class Settings(BaseSettings):
    model_config = SettingsConfigDict(  # pyright: ignore[reportUnannotatedClassAttribute]
        env_prefix="BOOKSOURCE_",
        env_nested_delimiter="__",
        nested_model_default_partial_update=True,
        env_file=(".env.local", ".env"),
        extra="ignore",
    )

    db: DBSettings = DBSettings()
    app: ApplicationSettings = ApplicationSettings()
    quota: QuotaSettings = QuotaSettings()
    orchestration: OrchestrationSettings = OrchestrationSettings()

    def get_sqlite_path(self):
        if self.db.sqlite_path.startswith("/"):
            return self.db.sqlite_path
        return str(pathlib.Path(self.app.config_dir) / self.db.sqlite_path)
