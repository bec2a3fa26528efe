# src/stats/stats_service.py
# Estadísticas de uso y costos del Redactor IA
# ============================================

"""
Precios de LLM e imágenes, registro de costos y escaneos, y el resumen
de uso que alimenta el panel y la sugerencia de frecuencia.

Las tasas (aprobación, selección) se expresan en porcentaje con un
decimal, igual que las muestra el panel.
"""

import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from config.settings import DEFAULT_TENANT
from src.scheduler.frequency import (
    FREQUENCY_LADDER,
    calculate_optimal_frequency,
    useful_topics_per_scan,
)
from src.storage import DatabaseManager, get_database_manager
from src.utils.datetime_utils import ensure_utc, utc_now
from src.utils.logger import create_module_logger

logger = create_module_logger("stats")

# USD por millón de tokens (entrada, salida)
LLM_PRICING: Dict[str, tuple] = {
    "claude-3-5-sonnet-20240620": (3.00, 15.00),
    "claude-3-5-sonnet-20241022": (3.00, 15.00),
    "claude-sonnet-4.5-thinking": (3.00, 15.00),
    "claude-sonnet-4-5-20250929": (3.00, 15.00),
    "claude-3-sonnet-20240229": (3.00, 15.00),
    "claude-opus": (15.00, 75.00),
    "claude-opus-4-1-20250805": (15.00, 75.00),
    "claude-3-opus-20240229": (15.00, 75.00),
    "claude-3-haiku-20240307": (0.25, 1.25),
    "gpt-4o": (2.50, 10.00),
    "gpt-4o-2024-11-20": (2.50, 10.00),
    "gpt-4o-2024-08-06": (2.50, 10.00),
    "gpt-4o-2024-05-13": (5.00, 15.00),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o-mini-2024-07-18": (0.15, 0.60),
    "gpt-4-turbo": (10.00, 30.00),
    "gpt-4-turbo-2024-04-09": (10.00, 30.00),
    "gpt-4": (30.00, 60.00),
    "gpt-4-32k": (60.00, 120.00),
    "gpt-3.5-turbo": (0.50, 1.50),
    "gpt-3.5-turbo-0125": (0.50, 1.50),
}
DEFAULT_LLM_PRICING = (3.00, 15.00)

IMAGE_PRICING: Dict[str, float] = {
    "dall-e-3": 0.04,
    "dall-e-2": 0.02,
    "stable-diffusion": 0.01,
    "midjourney": 0.05,
    "hailuo": 0.03,
}


def calculate_llm_cost(model: str, prompt_tokens: int = 0, completion_tokens: int = 0) -> float:
    input_price, output_price = LLM_PRICING.get(model, DEFAULT_LLM_PRICING)
    cost = (prompt_tokens / 1_000_000) * input_price + (completion_tokens / 1_000_000) * output_price
    return round(cost, 6)


def calculate_image_cost(provider: Optional[str]) -> float:
    return IMAGE_PRICING.get((provider or "").lower(), 0.0)


def default_range(now: Optional[datetime] = None) -> tuple:
    """Desde el inicio del mes hasta el final del día de hoy (UTC)."""
    now = now or utc_now()
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    end = now.replace(hour=23, minute=59, second=59, microsecond=999999)
    return start, end


class StatsService:
    """Registro de costos y escaneos, y agregados de uso por tenant."""

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db = db_manager or get_database_manager()

    def log_cost(
        self,
        cost_type: str,
        cost_usd: float,
        tenant_id: str = DEFAULT_TENANT,
        draft_id: Optional[int] = None,
        topic_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        """Nunca lanza: un costo que no se pudo guardar solo se registra en el log."""
        try:
            entry = self.db.log_cost(
                cost_type, cost_usd, tenant_id=tenant_id, draft_id=draft_id, topic_id=topic_id, metadata=metadata
            )
        except (SQLAlchemyError, ValueError) as exc:
            logger.error(f"❌ Error registrando costo {cost_type}: {exc}")
            return None
        logger.info(f"💰 Costo registrado: {cost_type} = ${cost_usd:.4f}")
        return entry

    def log_scan(self, tenant_id: str = DEFAULT_TENANT, **fields: Any):
        try:
            entry = self.db.log_scan(tenant_id=tenant_id, **fields)
        except (SQLAlchemyError, ValueError) as exc:
            logger.error(f"❌ Error registrando escaneo: {exc}")
            return None
        logger.info(
            f"📊 Escaneo registrado: {fields.get('topics_found', 0)} temas ({fields.get('status', 'success')})"
        )
        return entry

    def get_usage_stats(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        tenant_id: str = DEFAULT_TENANT,
    ) -> Dict[str, Any]:
        default_start, default_end = default_range()
        start = ensure_utc(start) if start else default_start
        end = ensure_utc(end) if end else default_end
        logger.debug(f"📊 Calculando estadísticas {start.isoformat()} → {end.isoformat()}")

        raw = self.db.get_usage_aggregates(start, end, tenant_id)

        scans = raw["scan_count"]
        topics_found = raw["topics_found"]
        total_drafts = sum(raw["drafts_by_review_status"].values())
        approved = raw["approved_drafts"]
        total_topics = sum(raw["topics_by_status"].values())

        costs = raw["costs_by_type"]
        total_cost = sum(item["total"] for item in costs.values())
        operations = sum(item["count"] for item in costs.values())

        avg_topics = topics_found / scans if scans else 0.0
        approval_rate = approved / total_drafts * 100 if total_drafts else 0.0
        selection_rate = raw["topics_selected"] / total_topics * 100 if total_topics else 0.0

        return {
            "avgTopicsPerScan": round(avg_topics, 1),
            "approvedDrafts": approved,
            "avgCost": round(total_cost / operations, 4) if operations else 0.0,
            "scans": scans,
            "totalScans": scans,
            "totalTopicsFound": topics_found,
            "totalDrafts": total_drafts,
            "approvalRate": round(approval_rate, 1),
            "selectionRate": round(selection_rate, 1),
            "totalCost": round(total_cost, 2),
            "costOperations": operations,
            "costsByType": {
                cost_type: {
                    "total": round(item["total"], 2),
                    "count": item["count"],
                    "avg": round(item["total"] / item["count"], 4) if item["count"] else 0.0,
                }
                for cost_type, item in costs.items()
            },
            "range": {
                "from": start.isoformat(),
                "to": end.isoformat(),
                "days": math.ceil((end - start) / timedelta(days=1)),
            },
        }

    def suggest_frequency(self, tenant_id: str = DEFAULT_TENANT) -> Dict[str, Any]:
        config = self.db.get_ai_config(tenant_id)
        stats = self.get_usage_stats(tenant_id=tenant_id)
        current = config.scan_frequency or "3h"
        suggested = calculate_optimal_frequency(current, stats)
        useful = useful_topics_per_scan(stats)

        if suggested == current:
            reason = f"Frecuencia adecuada: {useful} temas útiles por escaneo"
        elif FREQUENCY_LADDER.index(suggested) > FREQUENCY_LADDER.index(current):
            reason = f"Demasiados temas útiles ({useful}) por escaneo: espaciar los escaneos"
        else:
            reason = f"Pocos temas útiles ({useful}) por escaneo: escanear más seguido"

        return {
            "current": current,
            "suggested": suggested,
            "changed": suggested != current,
            "usefulTopicsPerScan": useful,
            "reason": reason,
            "stats": stats,
        }


_stats_service: Optional[StatsService] = None


def get_stats_service() -> StatsService:
    global _stats_service
    if _stats_service is None:
        _stats_service = StatsService()
    return _stats_service
