"""Scoring package exports."""

from .impact_scorer import (
    DEFAULT_WEIGHTS,
    ImpactResult,
    ImpactScorer,
    apply_cuba_boost,
    calculate_impact_score,
    determine_confidence,
    final_score,
)

__all__ = [
    "DEFAULT_WEIGHTS",
    "ImpactResult",
    "ImpactScorer",
    "apply_cuba_boost",
    "calculate_impact_score",
    "determine_confidence",
    "final_score",
]
