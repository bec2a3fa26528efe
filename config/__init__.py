"""Config package with lazy attribute loading to keep packaging imports light."""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict, Iterable

_MODULE_ATTRS: Dict[str, Iterable[str]] = {
    "config.settings": [
        "CONFIG",
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
        "ENVIRONMENT",
        "IS_PRODUCTION",
        "DEBUG",
        "DEFAULT_TENANT",
        "PUBLIC_ORIGIN",
        "validate_config",
    ],
    "config.sources": [
        "CUBAN_INDEPENDENT_FEEDS",
        "KNOWN_RSS_FEEDS",
        "NEWSAPI_PRIORITY_DOMAINS",
        "OFFICIAL_BLACKLIST",
        "TECH_DOMAINS",
        "TREND_DOMAINS",
        "TECH_TREND_BYPASS",
        "AUTHORITY_MAP",
        "get_feed_sources",
        "validate_sources",
    ],
    "config.version": [
        "MIN_PYTHON_VERSION",
        "MIN_PYTHON_VERSION_STR",
        "PROJECT_VERSION",
        "PYTHON_REQUIRES_SPECIFIER",
        "__version__",
    ],
}

__all__ = [attribute for attributes in _MODULE_ATTRS.values() for attribute in attributes]

_ATTR_TO_MODULE: Dict[str, str] = {
    attribute: module for module, attributes in _MODULE_ATTRS.items() for attribute in attributes
}


def __getattr__(name: str) -> Any:
    module_name = _ATTR_TO_MODULE.get(name)
    if module_name is None:
        raise AttributeError(f"module 'config' has no attribute {name!r}")
    module = import_module(module_name)
    for attribute in _MODULE_ATTRS[module_name]:
        globals()[attribute] = getattr(module, attribute)
    return globals()[name]


__author__ = "Redactor IA Team"
