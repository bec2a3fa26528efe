"""Escáner de temas: filtros, frescura, agrupación y orquestación."""

from .cuba_filter import StrictCubaFilter, get_cuba_strict_query
from .freshness import apply_freshness_window, cap_per_source, freshness_score, is_new_article
from .topic_grouping import Topic, group_into_topics
from .topic_scanner import (
    ScanInProgressError,
    TopicScanner,
    get_topic_scanner,
    scan_sources,
    select_topics,
)

__all__ = [
    "ScanInProgressError",
    "StrictCubaFilter",
    "Topic",
    "TopicScanner",
    "apply_freshness_window",
    "cap_per_source",
    "freshness_score",
    "get_cuba_strict_query",
    "get_topic_scanner",
    "group_into_topics",
    "is_new_article",
    "scan_sources",
    "select_topics",
]
