"""Clasificación de categorías para temas y borradores."""

from .categories import ALLOWED_CATEGORIES, GENERAL, THRESHOLDS, is_valid_category
from .category_classifier import (
    CategoryResult,
    category_for_host,
    classify_by_llm,
    classify_by_rules,
    classify_by_similarity,
    classify_category,
    derive_category,
    suggest_category,
)

__all__ = [
    "ALLOWED_CATEGORIES",
    "GENERAL",
    "THRESHOLDS",
    "CategoryResult",
    "category_for_host",
    "classify_by_llm",
    "classify_by_rules",
    "classify_by_similarity",
    "classify_category",
    "derive_category",
    "is_valid_category",
    "suggest_category",
]
