"""Programación de escaneos y publicaciones del Redactor IA."""

from .frequency import (
    CRON_BY_FREQUENCY,
    DEFAULT_CRON,
    FREQUENCY_LADDER,
    calculate_optimal_frequency,
    compute_next_scan_at,
    frequency_hours,
    frequency_to_cron,
    useful_topics_per_scan,
)

__all__ = [
    "CRON_BY_FREQUENCY",
    "DEFAULT_CRON",
    "FREQUENCY_LADDER",
    "calculate_optimal_frequency",
    "compute_next_scan_at",
    "frequency_hours",
    "frequency_to_cron",
    "useful_topics_per_scan",
]
