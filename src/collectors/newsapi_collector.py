# src/collectors/newsapi_collector.py
# Colector NewsAPI del Redactor IA
# ================================

"""
Cliente de ``/v2/everything`` de NewsAPI.

Los dominios se envían en lotes de 12 (URLs más largas devuelven 400) y se
repiten por idioma. Un 400 o un timeout en un lote se reporta como
``NewsAPIUnavailable`` con los dominios del lote, para que el escáner pueda
pasar esos dominios al colector RSS.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from config.settings import COLLECTION_CONFIG

from src.contracts import ScannedArticle

from .base_collector import BaseCollector, CollectorResult

NORMAL_MODE_QUERY = "(technology OR AI OR crypto OR cybersecurity OR politics) -sports"


class NewsAPIUnavailable(Exception):
    """NewsAPI rechazó la consulta (400) o no respondió a tiempo."""

    def __init__(self, message: str, domains: Sequence[str] = (), status_code: Optional[int] = None):
        super().__init__(message)
        self.domains = list(domains)
        self.status_code = status_code


def batch_domains(domains: Sequence[str], size: int) -> List[List[str]]:
    """Lotes de ``size`` dominios; una lista vacía produce un único lote vacío."""
    if not domains:
        return [[]]
    return [list(domains[i : i + size]) for i in range(0, len(domains), size)]


class NewsAPICollector(BaseCollector):
    """Colector de NewsAPI con httpx."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        logger_factory=None,
    ) -> None:
        super().__init__(logger_factory=logger_factory)
        self.api_key = api_key or COLLECTION_CONFIG.get("newsapi_key")
        self.url = COLLECTION_CONFIG.get("newsapi_url", "https://newsapi.org/v2/everything")
        self.batch_size = int(COLLECTION_CONFIG.get("newsapi_domain_batch", 12))
        self.page_size = int(COLLECTION_CONFIG.get("newsapi_page_size", 100))
        # Dominios de lotes fallidos en la última consulta (respaldo RSS)
        self.last_failed_domains: List[str] = []
        self.client = client or httpx.Client(
            timeout=float(COLLECTION_CONFIG.get("newsapi_timeout_seconds", 10)),
            headers={
                "User-Agent": COLLECTION_CONFIG["user_agent"],
                "Accept": "application/json",
            },
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def collect_from_source(self, source_id: str, source_config: Dict[str, Any]) -> CollectorResult:
        start = time.time()
        result = CollectorResult(source_id=source_id)
        try:
            result.articles = self.fetch(
                query=source_config.get("query"),
                domains=source_config.get("domains") or (),
                languages=[source_config.get("language", "es")],
                from_dt=source_config.get("from_dt"),
                page_size=source_config.get("page_size"),
            )
            result.success = True
        except NewsAPIUnavailable as exc:
            result.error_message = str(exc)
            result.status_code = exc.status_code
        result.processing_time = self._elapsed(start)
        return result

    def fetch(
        self,
        query: Optional[str] = None,
        domains: Iterable[str] = (),
        languages: Sequence[str] = ("es",),
        from_dt: Optional[datetime] = None,
        to_dt: Optional[datetime] = None,
        page_size: Optional[int] = None,
    ) -> List[ScannedArticle]:
        """
        Ejecuta la consulta sobre todos los lotes de dominios e idiomas.

        Los lotes que fallan con 400/timeout se acumulan; si al final no se
        obtuvo ningún artículo y hubo fallos, se lanza ``NewsAPIUnavailable``
        con todos los dominios afectados.
        """
        if not self.enabled:
            raise NewsAPIUnavailable("NEWSAPI_KEY no configurada")

        domain_list = list(domains)
        batches = batch_domains(domain_list, self.batch_size)
        articles: List[ScannedArticle] = []
        failed: List[NewsAPIUnavailable] = []

        self._emit_log(
            "info",
            "scanner.newsapi.start",
            details={"batches": len(batches), "languages": list(languages), "query": query},
        )

        for batch in batches:
            for language in languages:
                params = self._build_params(query, batch, language, from_dt, to_dt, page_size)
                try:
                    articles.extend(self._request(params, batch))
                except NewsAPIUnavailable as exc:
                    failed.append(exc)
                    self._emit_log(
                        "warning",
                        "scanner.newsapi.batch_failed",
                        details={
                            "language": language,
                            "domains": batch[:10],
                            "status_code": exc.status_code,
                            "error": str(exc),
                        },
                    )

        if failed and not articles:
            failed_domains = [d for exc in failed for d in exc.domains]
            raise NewsAPIUnavailable(
                str(failed[0]), domains=failed_domains, status_code=failed[0].status_code
            )
        self.last_failed_domains = [d for exc in failed for d in exc.domains]

        self._emit_log(
            "info", "scanner.newsapi.completed", details={"articles_found": len(articles)}
        )
        return articles

    def _build_params(
        self,
        query: Optional[str],
        domains: Sequence[str],
        language: str,
        from_dt: Optional[datetime],
        to_dt: Optional[datetime],
        page_size: Optional[int],
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "sortBy": "publishedAt",
            "pageSize": min(int(page_size or self.page_size), 100),
            "language": language,
            "apiKey": self.api_key,
        }
        if query:
            params["q"] = query
        if domains:
            params["domains"] = ",".join(domains)
        if from_dt:
            params["from"] = from_dt.astimezone(timezone.utc).strftime("%Y-%m-%d")
            params["to"] = (to_dt or datetime.now(timezone.utc)).astimezone(timezone.utc).strftime("%Y-%m-%d")
        return params

    def _request(self, params: Dict[str, Any], batch: Sequence[str]) -> List[ScannedArticle]:
        try:
            response = self.client.get(self.url, params=params)
        except httpx.TimeoutException as exc:
            raise NewsAPIUnavailable(f"Timeout de NewsAPI: {exc}", domains=batch) from exc
        except httpx.HTTPError as exc:
            raise NewsAPIUnavailable(f"Error de red con NewsAPI: {exc}", domains=batch) from exc

        if response.status_code == 400:
            raise NewsAPIUnavailable("NewsAPI 400 Bad Request", domains=batch, status_code=400)
        if response.status_code >= 400:
            raise NewsAPIUnavailable(
                f"NewsAPI HTTP {response.status_code}", domains=batch, status_code=response.status_code
            )

        data = response.json() or {}
        if data.get("status") == "error":
            raise NewsAPIUnavailable(
                f"NewsAPI error {data.get('code')}: {data.get('message')}",
                domains=batch,
                status_code=response.status_code,
            )
        return [a for a in (self._to_article(raw) for raw in data.get("articles") or []) if a]

    def _to_article(self, raw: Dict[str, Any]) -> Optional[ScannedArticle]:
        try:
            return ScannedArticle(
                title=raw.get("title"),
                description=raw.get("description"),
                content=raw.get("content") or raw.get("description"),
                url=raw.get("url"),
                published_at=raw.get("publishedAt"),
                medio=(raw.get("source") or {}).get("name") or "Desconocido",
                image_url=raw.get("urlToImage"),
                origin="newsapi",
            )
        except ValidationError:
            return None

    def close(self) -> None:
        self.client.close()


def window_start(hours: int, now: Optional[datetime] = None) -> datetime:
    return (now or datetime.now(timezone.utc)) - timedelta(hours=hours)
