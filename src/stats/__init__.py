"""Estadísticas de uso y costos."""

from .stats_service import (
    StatsService,
    calculate_image_cost,
    calculate_llm_cost,
    get_stats_service,
)

__all__ = ["StatsService", "calculate_image_cost", "calculate_llm_cost", "get_stats_service"]
