# src/scanner/freshness.py
# Frescura de los artículos escaneados
# ====================================

"""
Puntaje de frescura, ventanas de tiempo por categoría y tope de artículos
por fuente. Todas las edades se miden en horas UTC.
"""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from src.contracts import ScannedArticle
from src.utils.datetime_utils import ensure_utc, hours_between, utc_now

WINDOW_HOURS_DEFAULT = 48
PER_SOURCE_CAP = 5
DECAY_HALF_LIFE_HOURS = 24
NEW_BADGE_THRESHOLD_HOURS = 24
WINDOW_OPTIONS = (12, 24, 48, 72, 168)

CATEGORY_WINDOWS: Dict[str, int] = {
    "Tecnología": 36,
    "Tendencia": 24,
    "Internacional": 72,
}


def freshness_score(published_at: Optional[datetime], now: Optional[datetime] = None) -> float:
    """exp(-age/24h) acotado a [0, 1]; 0 si no hay fecha."""
    if not isinstance(published_at, datetime):
        return 0.0
    age_hours = hours_between(now or utc_now(), published_at)
    score = math.exp(-age_hours / DECAY_HALF_LIFE_HOURS)
    return max(0.0, min(1.0, score))


def is_new_article(published_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """Insignia de 'nuevo': publicado hace menos de 24 horas."""
    if not isinstance(published_at, datetime):
        return False
    return hours_between(now or utc_now(), published_at) < NEW_BADGE_THRESHOLD_HOURS


def window_for_category(category: Optional[str], default: int = WINDOW_HOURS_DEFAULT) -> int:
    return CATEGORY_WINDOWS.get(category or "", default)


def apply_freshness_window(
    articles: Sequence[ScannedArticle],
    window_hours: int = WINDOW_HOURS_DEFAULT,
    now: Optional[datetime] = None,
) -> List[ScannedArticle]:
    """
    Conserva los artículos publicados dentro de la ventana.

    Se descartan los que no traen fecha y los fechados en el futuro (feeds
    con la zona horaria rota): su edad no es confiable.
    """
    now = ensure_utc(now or utc_now())
    kept: List[ScannedArticle] = []
    for article in articles:
        if article.published_at is None:
            continue
        age = hours_between(now, article.published_at)
        if 0 <= age <= window_hours:
            kept.append(article)
    return kept


def cap_per_source(articles: Sequence[ScannedArticle], cap: int = PER_SOURCE_CAP) -> List[ScannedArticle]:
    """Los ``cap`` artículos más recientes de cada host, en el orden en que aparecieron los hosts."""
    by_host: Dict[str, List[ScannedArticle]] = defaultdict(list)
    for article in articles:
        by_host[article.host or "unknown"].append(article)

    capped: List[ScannedArticle] = []
    for items in by_host.values():
        items.sort(
            key=lambda a: a.published_at.timestamp() if a.published_at else float("-inf"),
            reverse=True,
        )
        capped.extend(items[:cap])
    return capped
