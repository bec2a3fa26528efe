"""Declarative configuration schema for the Redactor IA pipeline."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveFloat,
    PositiveInt,
    PrivateAttr,
    field_validator,
    model_validator,
)


class SchemaError(ValueError):
    """Raised when the configuration schema definition is invalid."""


class StrictModel(BaseModel):
    """Base model that rejects unknown keys and validates on assignment."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _blank_optionals_are_unset(cls, data: Any) -> Any:
        # config.toml stores unset optionals as "" (TOML has no null)
        if not isinstance(data, dict):
            return data
        cleaned = dict(data)
        for key, value in data.items():
            field = cls.model_fields.get(key)
            if value == "" and field is not None and not field.is_required() and field.default is None:
                cleaned[key] = None
        return cleaned


class AppSettings(StrictModel):
    """Runtime metadata shared by every entry point."""

    environment: str = Field(
        default="development",
        description="Deployment environment name.",
        examples=["production"],
    )
    debug: bool = Field(
        default=False,
        description="Enables verbose console logging.",
    )
    tenant_id: str = Field(
        default="levantatecuba",
        description="Default tenant used when a request does not name one.",
    )
    timezone: str = Field(
        default="America/Havana",
        description="Editorial timezone used for publishing windows.",
    )
    public_origin: str = Field(
        default="https://levantatecuba.com",
        description="Public site origin used to build canonical news URLs.",
    )

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"development", "production", "staging", "test"}:
            raise ValueError(
                "environment must be one of: development, staging, production, test"
            )
        return normalized

    @field_validator("public_origin")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class PathsConfig(StrictModel):
    """Filesystem layout settings."""

    data_dir: Path = Field(
        default=Path("data"),
        description="Root directory for runtime artefacts.",
        examples=["/var/lib/redactor"],
    )
    logs_dir: Path = Field(
        default=Path("logs"),
        description="Directory for operational logs, relative to data_dir.",
    )
    dlq_dir: Path = Field(
        default=Path("dlq"),
        description="Directory for failed feed payloads, relative to data_dir.",
    )

    @model_validator(mode="after")
    def _ensure_child_paths(self) -> "PathsConfig":
        base = self.data_dir if self.data_dir.is_absolute() else self.data_dir.resolve()
        object.__setattr__(self, "data_dir", base)
        if not self.logs_dir.is_absolute():
            object.__setattr__(self, "logs_dir", (base / self.logs_dir).resolve())
        if not self.dlq_dir.is_absolute():
            object.__setattr__(self, "dlq_dir", (base / self.dlq_dir).resolve())
        return self


class DatabaseConfig(StrictModel):
    """Database connectivity parameters."""

    driver: str = Field(
        default="sqlite",
        description="Database backend driver.",
        examples=["postgresql"],
    )
    path: Optional[Path] = Field(
        default=Path("data/redactor.db"),
        description="SQLite database file.",
    )
    host: Optional[str] = Field(default=None, description="PostgreSQL host.")
    port: Optional[int] = Field(default=None, description="PostgreSQL port.")
    name: str = Field(default="redactor_ia", description="Database name.")
    user: Optional[str] = Field(default=None, description="Database user.")
    password: Optional[str] = Field(
        default=None, description="Database password; treated as secret."
    )
    sslmode: Optional[str] = Field(default=None, description="libpq SSL mode.")
    connect_timeout: PositiveInt = Field(default=10)
    statement_timeout: PositiveInt = Field(
        default=30_000, description="Statement timeout in milliseconds."
    )
    pool_size: PositiveInt = Field(default=5)
    max_overflow: PositiveInt = Field(default=5)
    pool_timeout: PositiveInt = Field(default=30)
    pool_recycle: PositiveInt = Field(default=1_800)

    @model_validator(mode="after")
    def _validate_backend(self) -> "DatabaseConfig":
        driver = self.driver.lower()
        if driver not in {"sqlite", "postgresql"}:
            raise ValueError("driver must be either 'sqlite' or 'postgresql'")
        if driver == "sqlite":
            if not self.path:
                raise ValueError("SQLite configuration requires a file path")
            return self
        missing = [
            name for name in ("host", "port", "user") if getattr(self, name) in (None, "")
        ]
        if missing:
            raise ValueError("PostgreSQL configuration requires fields: " + ", ".join(missing))
        if self.port is not None and self.port <= 0:
            raise ValueError("Database port must be a positive integer")
        return self


class CollectionConfig(StrictModel):
    """HTTP behaviour of the feed and NewsAPI collectors."""

    request_timeout_seconds: PositiveInt = Field(
        default=15, description="HTTP timeout for feed requests."
    )
    max_articles_per_feed: PositiveInt = Field(
        default=30, description="Entries read from a single RSS feed."
    )
    rss_miss_ttl_hours: PositiveInt = Field(
        default=24,
        description="Hours a host that failed to serve a feed is skipped.",
    )
    user_agent: str = Field(
        default="Mozilla/5.0 (compatible; LevantateCubaBot/1.0; +https://levantatecuba.com)",
        description="User-Agent header sent to providers.",
    )
    newsapi_url: str = Field(default="https://newsapi.org/v2/everything")
    newsapi_key: Optional[str] = Field(
        default=None, description="NewsAPI key; falls back to NEWSAPI_KEY."
    )
    newsapi_page_size: PositiveInt = Field(default=100, le=100)
    newsapi_domain_batch: PositiveInt = Field(
        default=12, description="Domains per NewsAPI request."
    )
    newsapi_timeout_seconds: PositiveInt = Field(default=10)


class RateLimitingConfig(StrictModel):
    """Request throttling and retry policy."""

    delay_between_requests_seconds: PositiveFloat = Field(default=0.5)
    domain_default_delay_seconds: PositiveFloat = Field(default=0.5)
    domain_overrides: Dict[str, PositiveFloat] = Field(
        default_factory=lambda: {"newsapi.org": 1.0},
        description="Per-domain delay overrides in seconds.",
    )
    max_retries: PositiveInt = Field(default=3)
    backoff_base: PositiveFloat = Field(default=0.5)
    backoff_max: PositiveFloat = Field(default=10.0)
    jitter_max: PositiveFloat = Field(default=0.3)


class ImpactWeightsConfig(StrictModel):
    """Weights for the six impact metrics."""

    recencia: float = Field(default=0.20, ge=0.0, le=1.0)
    consenso: float = Field(default=0.15, ge=0.0, le=1.0)
    autoridad: float = Field(default=0.15, ge=0.0, le=1.0)
    tendencia: float = Field(default=0.15, ge=0.0, le=1.0)
    relevancia_cuba: float = Field(default=0.20, ge=0.0, le=1.0, alias="relevanciaCuba")
    novedad: float = Field(default=0.15, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_sum(self) -> "ImpactWeightsConfig":
        total = (
            self.recencia
            + self.consenso
            + self.autoridad
            + self.tendencia
            + self.relevancia_cuba
            + self.novedad
        )
        if abs(total - 1.0) > 0.01:
            raise ValueError("Impact weights must sum to approximately 1.0")
        return self


class ScannerConfig(StrictModel):
    """Topic scanner defaults applied when AiConfig leaves a value unset."""

    max_topics_per_scan: PositiveInt = Field(default=8, le=20)
    freshness_window_hours: PositiveInt = Field(default=48, ge=12, le=168)
    per_source_cap: PositiveInt = Field(default=5, le=10)
    strict_cuba: bool = Field(default=True)
    newsapi_enabled: bool = Field(default=True)
    category_quotas: Dict[str, PositiveInt] = Field(
        default_factory=lambda: {"Tendencia": 6, "Tecnología": 6, "Internacional": 3},
        description="Minimum topics per category in normal mode.",
    )
    group_similarity_threshold: float = Field(default=0.5, gt=0.0, lt=1.0)


class ScoringConfig(StrictModel):
    """Impact scoring configuration."""

    weights: ImpactWeightsConfig = Field(default_factory=ImpactWeightsConfig)
    trend_keyword_weight: float = Field(default=0.30, ge=0.0, le=1.0)
    unknown_authority: int = Field(default=60, ge=0, le=100)


class GenerationConfig(StrictModel):
    """Draft generation parameters."""

    default_model: str = Field(default="gpt-4o-mini")
    revision_model: str = Field(default="gpt-4o-mini")
    factual_temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    opinion_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    revision_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    factual_min_chars: PositiveInt = Field(default=3000)
    opinion_min_chars: PositiveInt = Field(default=600)
    max_tags: PositiveInt = Field(default=8)
    classifier_use_llm: bool = Field(default=True)


class LLMConfig(StrictModel):
    """Credentials and transport settings for LLM providers."""

    openai_api_key: Optional[str] = Field(default=None)
    anthropic_api_key: Optional[str] = Field(default=None)
    timeout_seconds: PositiveInt = Field(default=60)
    max_attempts: PositiveInt = Field(default=2)
    retry_base_seconds: PositiveFloat = Field(default=2.0)
    max_output_tokens: PositiveInt = Field(default=4096)


class ImageConfig(StrictModel):
    """Cover image generation."""

    enabled: bool = Field(default=False)
    provider: str = Field(default="dall-e-3")
    size: str = Field(default="1792x1024")

    @field_validator("provider")
    @classmethod
    def _lower_provider(cls, value: str) -> str:
        return value.lower()


class FacebookConfig(StrictModel):
    """Graph API credentials and auto-publisher defaults."""

    page_id: Optional[str] = Field(default=None)
    page_token: Optional[str] = Field(default=None)
    graph_version: str = Field(default="v23.0")
    timeout_seconds: PositiveInt = Field(default=30)
    cooldown_minutes: PositiveInt = Field(default=5)
    interval_minutes: PositiveInt = Field(default=30)
    start_hour: int = Field(default=7, ge=0, le=23)
    end_hour: int = Field(default=23, ge=0, le=23)
    max_per_day: int = Field(default=0, ge=0)


class PublishingConfig(StrictModel):
    """Draft publishing defaults."""

    default_author: str = Field(default="Redactor IA")
    due_batch_size: PositiveInt = Field(default=10)
    auto_schedule_batch_size: PositiveInt = Field(default=50)
    auto_schedule_interval_minutes: PositiveInt = Field(default=30)
    auto_schedule_start_hour: int = Field(default=7, ge=0, le=23)
    auto_schedule_end_hour: int = Field(default=23, ge=1, le=24)


class ApiConfig(StrictModel):
    """HTTP server settings."""

    host: str = Field(default="127.0.0.1")
    port: PositiveInt = Field(default=8000)


class LoggingConfig(StrictModel):
    """Logging subsystem configuration."""

    level: str = Field(default="INFO", examples=["DEBUG"])
    file_path: Path = Field(
        default=Path("data/logs/redactor.log"),
        description="Rotating log file.",
    )
    max_file_size_mb: PositiveInt = Field(default=10)
    retention_days: PositiveInt = Field(default=30)
    format: str = Field(
        default="{time:YYYY-MM-DD HH:mm:ss} | {level:<8} | {name}:{line} | {message}",
    )

    @field_validator("level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def _resolve_path(self) -> "LoggingConfig":
        if not self.file_path.is_absolute():
            object.__setattr__(self, "file_path", self.file_path.resolve())
        return self


class Config(StrictModel):
    """Complete Redactor IA configuration model."""

    app: AppSettings = Field(default_factory=AppSettings)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    collection: CollectionConfig = Field(default_factory=CollectionConfig)
    rate_limiting: RateLimitingConfig = Field(default_factory=RateLimitingConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    images: ImageConfig = Field(default_factory=ImageConfig)
    facebook: FacebookConfig = Field(default_factory=FacebookConfig)
    publishing: PublishingConfig = Field(default_factory=PublishingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    _metadata: object = PrivateAttr(default=None)

    @model_validator(mode="after")
    def _check_publishing_window(self) -> "Config":
        if self.publishing.auto_schedule_start_hour >= self.publishing.auto_schedule_end_hour:
            raise ValueError("auto_schedule_start_hour must be lower than auto_schedule_end_hour")
        return self


DEFAULT_CONFIG = Config()


def iter_field_docs(
    model: BaseModel | type[BaseModel],
    prefix: str = "",
    *,
    include_defaults: bool = True,
) -> Iterable[dict[str, object]]:
    """Yield one documentation entry per field, descending into sections."""

    instance = DEFAULT_CONFIG if isinstance(model, type) else model
    target_model = model if isinstance(model, type) else type(model)

    for name, field in target_model.model_fields.items():
        value = getattr(instance, name, field.default)
        key = f"{prefix}.{name}" if prefix else name
        is_nested = isinstance(value, BaseModel)
        yield {
            "name": key,
            "type": getattr(field.annotation, "__name__", str(field.annotation)),
            "description": field.description or "",
            "default": None if (is_nested or not include_defaults) else value,
            "examples": field.examples or [],
            "constraints": _describe_constraints(field),
            "is_nested": is_nested,
        }
        if is_nested:
            yield from iter_field_docs(value, key)


_COMPARATORS = {
    "ge": ">=",
    "gt": ">",
    "le": "<=",
    "lt": "<",
    "max_length": "len<=",
    "min_length": "len>=",
}


def _describe_constraints(field: Any) -> str:
    parts: List[str] = []
    for metadata in getattr(field, "metadata", []) or []:
        for attr, comparator in _COMPARATORS.items():
            bound = getattr(metadata, attr, None)
            if bound is not None:
                parts.append(f"{comparator} {bound}")
    return ", ".join(parts)


__all__ = [
    "Config",
    "DEFAULT_CONFIG",
    "ImpactWeightsConfig",
    "SchemaError",
    "StrictModel",
    "iter_field_docs",
]
