"""
Paquete de colectores del Redactor IA.

Incluye el colector RSS (whitelist, medios cubanos y respaldo) y el de NewsAPI.
"""

from .base_collector import BaseCollector, CollectorResult, validate_collector_result
from .newsapi_collector import NewsAPICollector, NewsAPIUnavailable
from .rss_collector import RSS_MISS_CACHE, RSSCollector, RSSMissCache

__all__ = [
    "BaseCollector",
    "CollectorResult",
    "NewsAPICollector",
    "NewsAPIUnavailable",
    "RSSCollector",
    "RSSMissCache",
    "RSS_MISS_CACHE",
    "validate_collector_result",
]
