# src/scheduler/frequency.py
# Frecuencia de escaneo del Redactor IA
# =====================================

"""
Traduce la frecuencia configurada a expresión cron, calcula el próximo
escaneo y sugiere ajustes según los temas útiles por ciclo.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional

from src.utils.datetime_utils import utc_now

DEFAULT_CRON = "0 */3 * * *"

CRON_BY_FREQUENCY: Dict[str, str] = {
    "2h": "0 */2 * * *",
    "3h": "0 */3 * * *",
    "4h": "0 */4 * * *",
    "6h": "0 */6 * * *",
    "12h": "0 */12 * * *",
    "24h": "0 0 * * *",
}

# Escalera de ajuste, de más frecuente a menos frecuente
FREQUENCY_LADDER = ["2h", "3h", "4h", "6h"]
USEFUL_TOPICS_TARGET = 3


def frequency_to_cron(frequency: Optional[str]) -> Optional[str]:
    """Expresión cron del escaneo; None en modo manual."""
    if frequency == "manual":
        return None
    return CRON_BY_FREQUENCY.get(frequency or "", DEFAULT_CRON)


def frequency_hours(frequency: Optional[str]) -> Optional[int]:
    if not frequency or frequency == "manual":
        return None
    try:
        return int(frequency.rstrip("h"))
    except ValueError:
        return 3


def compute_next_scan_at(frequency: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """Ahora más las horas de la frecuencia; None en modo manual."""
    hours = frequency_hours(frequency)
    if hours is None:
        return None
    return (now or utc_now()) + timedelta(hours=hours)


def _as_ratio(percent: Any) -> float:
    """Las estadísticas de uso reportan las tasas en porcentaje."""
    return float(percent or 0) / 100.0


def calculate_optimal_frequency(current: str, stats: Mapping[str, Any]) -> str:
    """
    Un solo paso en la escalera: más espaciado si un ciclo deja 4 temas
    útiles o más, más seguido si deja 2 o menos.
    """
    if current == "manual":
        return "manual"
    avg_topics = float(stats.get("avgTopicsPerScan") or 0)
    if not avg_topics or current not in FREQUENCY_LADDER:
        return current

    useful = useful_topics_per_scan(stats)
    index = FREQUENCY_LADDER.index(current)
    if useful >= USEFUL_TOPICS_TARGET + 1:
        index = min(index + 1, len(FREQUENCY_LADDER) - 1)
    elif useful <= USEFUL_TOPICS_TARGET - 1:
        index = max(index - 1, 0)
    return FREQUENCY_LADDER[index]


def useful_topics_per_scan(stats: Mapping[str, Any]) -> float:
    return round(
        float(stats.get("avgTopicsPerScan") or 0)
        * _as_ratio(stats.get("selectionRate"))
        * _as_ratio(stats.get("approvalRate")),
        2,
    )
