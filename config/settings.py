"""Project configuration facade backed by redactor_ia.config_manager."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from redactor_ia.config_manager import ConfigError, load_config
from redactor_ia.config_schema import Config

CONFIG: Config = load_config()

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = CONFIG.paths.data_dir
LOGS_DIR = CONFIG.paths.logs_dir
DLQ_DIR = CONFIG.paths.dlq_dir

for directory in (DATA_DIR, LOGS_DIR, DLQ_DIR):
    directory.mkdir(parents=True, exist_ok=True)

ENVIRONMENT = CONFIG.app.environment
DEBUG = CONFIG.app.debug
IS_PRODUCTION = ENVIRONMENT == "production"
DEFAULT_TENANT = CONFIG.app.tenant_id
PUBLIC_ORIGIN = CONFIG.app.public_origin

DATABASE_CONFIG: Dict[str, Any] = CONFIG.database.model_dump(mode="python")
DATABASE_CONFIG["type"] = DATABASE_CONFIG.pop("driver")

COLLECTION_CONFIG: Dict[str, Any] = CONFIG.collection.model_dump(mode="python")
COLLECTION_CONFIG["request_timeout"] = COLLECTION_CONFIG["request_timeout_seconds"]
COLLECTION_CONFIG["dlq_dir"] = DLQ_DIR

RATE_LIMITING_CONFIG: Dict[str, Any] = CONFIG.rate_limiting.model_dump(mode="python")
RATE_LIMITING_CONFIG["delay_between_requests"] = RATE_LIMITING_CONFIG[
    "delay_between_requests_seconds"
]
RATE_LIMITING_CONFIG["domain_default_delay"] = RATE_LIMITING_CONFIG[
    "domain_default_delay_seconds"
]

SCANNER_CONFIG: Dict[str, Any] = CONFIG.scanner.model_dump(mode="python")

SCORING_CONFIG: Dict[str, Any] = CONFIG.scoring.model_dump(mode="python")
# Claves de pesos tal como se guardan en AiConfig.impact_weights
SCORING_CONFIG["weights"] = CONFIG.scoring.weights.model_dump(mode="python", by_alias=True)

GENERATION_CONFIG: Dict[str, Any] = CONFIG.generation.model_dump(mode="python")
LLM_CONFIG: Dict[str, Any] = CONFIG.llm.model_dump(mode="python")
IMAGE_CONFIG: Dict[str, Any] = CONFIG.images.model_dump(mode="python")
FACEBOOK_CONFIG: Dict[str, Any] = CONFIG.facebook.model_dump(mode="python")
FACEBOOK_CONFIG["public_origin"] = PUBLIC_ORIGIN
PUBLISHING_CONFIG: Dict[str, Any] = CONFIG.publishing.model_dump(mode="python")
API_CONFIG: Dict[str, Any] = CONFIG.api.model_dump(mode="python")

LOGGING_CONFIG: Dict[str, Any] = {
    "level": CONFIG.logging.level,
    "file_path": str(CONFIG.logging.file_path),
    "max_file_size": f"{CONFIG.logging.max_file_size_mb} MB",
    "retention": f"{CONFIG.logging.retention_days} days",
    "format": CONFIG.logging.format,
}


def validate_config(config: Config | None = None) -> None:
    """Cross-section consistency checks not expressible in the schema."""

    cfg = config or CONFIG
    total = sum(cfg.scoring.weights.model_dump(mode="python").values())
    if abs(total - 1.0) > 0.01:
        raise ConfigError("scoring.weights must sum to 1.0 ±0.01")
    if cfg.database.driver == "sqlite" and not cfg.database.path:
        raise ConfigError("sqlite driver requires database.path")
    if cfg.database.driver == "postgresql":
        missing = [
            name for name in ("host", "port", "user", "password") if not getattr(cfg.database, name)
        ]
        if missing:
            raise ConfigError("postgresql configuration missing: " + ", ".join(missing))
    if cfg.facebook.page_token and not cfg.facebook.page_id:
        raise ConfigError("facebook.page_token requires facebook.page_id")


__all__ = [
    "BASE_DIR",
    "CONFIG",
    "DATA_DIR",
    "LOGS_DIR",
    "DLQ_DIR",
    "ENVIRONMENT",
    "DEBUG",
    "IS_PRODUCTION",
    "DEFAULT_TENANT",
    "PUBLIC_ORIGIN",
    "DATABASE_CONFIG",
    "COLLECTION_CONFIG",
    "RATE_LIMITING_CONFIG",
    "SCANNER_CONFIG",
    "SCORING_CONFIG",
    "GENERATION_CONFIG",
    "LLM_CONFIG",
    "IMAGE_CONFIG",
    "FACEBOOK_CONFIG",
    "PUBLISHING_CONFIG",
    "API_CONFIG",
    "LOGGING_CONFIG",
    "validate_config",
]
