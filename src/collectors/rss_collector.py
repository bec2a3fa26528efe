# src/collectors/rss_collector.py
# Colector RSS del Redactor IA
# ============================

"""
Colector de feeds RSS y Atom.

Se usa para tres cosas: los feeds de la whitelist configurada en AiConfig,
los medios independientes cubanos cuando NewsAPI falla en modo Cuba
estricto, y el respaldo por dominio cuando un lote de NewsAPI devuelve 400
o se agota el tiempo de espera.

Los dominios sin feed (404 o respuesta que no es un feed) se recuerdan en
una caché negativa durante ``rss_miss_ttl_hours`` para no volver a
probarlos en cada escaneo.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import feedparser
import requests
from pydantic import ValidationError
from requests.adapters import HTTPAdapter

from config.settings import COLLECTION_CONFIG, RATE_LIMITING_CONFIG
from config.sources import CUBAN_INDEPENDENT_FEEDS, get_feed_sources

from src.contracts import ScannedArticle
from src.utils.text_cleaner import clean_html, normalize_text
from src.utils.url_canonicalizer import host_of, normalize_host

from .base_collector import BaseCollector, CollectorResult
from .rate_limit_utils import backoff_delay, calculate_effective_delay

RETRYABLE_STATUS = (429, 500, 502, 503, 504)
MISS_STATUS = (403, 404, 410)
MAX_FEED_BYTES = 10 * 1024 * 1024
FALLBACK_MAX_DOMAINS = 10
FALLBACK_ITEMS_PER_FEED = 5
DESCRIPTION_MAX_CHARS = 500

# Excepciones de feedparser que no impiden extraer entradas
ACCEPTABLE_BOZO = ("CharacterEncodingOverride", "NonXMLContentType", "UndeclaredNamespace")


class RSSMissCache:
    """Caché negativa de dominios sin feed RSS, con expiración."""

    def __init__(self, ttl_hours: float):
        self.ttl = timedelta(hours=ttl_hours)
        self._misses: Dict[str, datetime] = {}

    def is_miss(self, domain: str, now: Optional[datetime] = None) -> bool:
        stamp = self._misses.get(domain)
        if stamp is None:
            return False
        now = now or datetime.now(timezone.utc)
        if now - stamp >= self.ttl:
            del self._misses[domain]
            return False
        return True

    def add(self, domain: str, now: Optional[datetime] = None) -> None:
        self._misses[domain] = now or datetime.now(timezone.utc)

    def clear(self) -> None:
        self._misses.clear()

    def __len__(self) -> int:
        return len(self._misses)


# Compartida entre instancias: un escaneo nuevo no debe olvidar los fallos previos
RSS_MISS_CACHE = RSSMissCache(COLLECTION_CONFIG.get("rss_miss_ttl_hours", 24))


class FeedUnavailable(Exception):
    """El dominio no expone un feed utilizable."""


class RSSCollector(BaseCollector):
    """
    Colector especializado en feeds RSS y Atom.

    Mantiene una sesión HTTP con pool de conexiones, respeta un retardo
    mínimo por dominio y reintenta con backoff exponencial los 429, 5xx,
    timeouts y errores de conexión.
    """

    def __init__(
        self,
        logger_factory=None,
        session: Optional[requests.Session] = None,
        miss_cache: Optional[RSSMissCache] = None,
        sleep=time.sleep,
    ) -> None:
        super().__init__(logger_factory=logger_factory)
        self.session = session or self._create_session()
        self.miss_cache = miss_cache if miss_cache is not None else RSS_MISS_CACHE
        self._sleep = sleep
        self._domain_last_request: Dict[str, float] = {}
        self.max_articles = int(COLLECTION_CONFIG.get("max_articles_per_feed", 30))

    def _create_session(self) -> requests.Session:
        """Sesión HTTP con pool de conexiones y cabeceras de bot identificable."""
        session = requests.Session()
        session.headers.update(
            {
                "User-Agent": COLLECTION_CONFIG["user_agent"],
                "Accept": "application/rss+xml, application/atom+xml, application/xml;q=0.9, text/xml;q=0.8, */*;q=0.5",
                "Accept-Language": "es-ES,es;q=0.9,en;q=0.8",
                "Accept-Encoding": "gzip, deflate",
            }
        )
        # Reintentos manuales para controlar el jitter
        adapter = HTTPAdapter(pool_connections=10, pool_maxsize=20)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _enforce_domain_rate_limit(self, domain: str, source_min_delay: Optional[float] = None) -> None:
        last = self._domain_last_request.get(domain)
        if last is not None:
            wait = (last + calculate_effective_delay(domain, source_min_delay)) - time.time()
            if wait > 0:
                self._sleep(wait)
        self._domain_last_request[domain] = time.time()

    # API pública
    # ===========

    def collect_from_source(self, source_id: str, source_config: Dict[str, Any]) -> CollectorResult:
        return self.fetch_feed(source_id, source_config)

    def fetch_feed(self, source_id: str, source_config: Dict[str, Any]) -> CollectorResult:
        """
        Descarga y parsea un feed.

        Prueba las URLs de ``candidates`` en orden (o solo ``url``) y se queda
        con la primera que devuelva un feed con entradas. Si ninguna lo hace,
        el dominio entra en la caché negativa.
        """
        start = time.time()
        result = CollectorResult(source_id=source_id)
        candidates = list(source_config.get("candidates") or [source_config["url"]])
        domain = normalize_host(host_of(candidates[0]))

        if self.miss_cache.is_miss(domain):
            result.success = True
            result.skipped = True
            self._emit_log(
                "debug", "collector.feed.miss_cached", source_id=source_id, details={"domain": domain}
            )
            return result

        job_key = self._make_job_key(source_id, candidates[0])
        if self._is_duplicate_job(job_key):
            result.success = True
            result.skipped = True
            self._emit_log("info", "collector.job.duplicate", source_id=source_id)
            return result
        self._register_job(job_key)

        self._emit_log(
            "info",
            "collector.fetch.start",
            source_id=source_id,
            details={"source_name": source_config.get("name"), "candidates": len(candidates)},
        )

        last_error: Optional[str] = None
        for feed_url in candidates:
            self._enforce_domain_rate_limit(domain, source_config.get("min_delay_seconds"))
            try:
                content, status = self._fetch_feed(source_id, feed_url)
                result.status_code = status
                entries = self._parse_entries(source_id, content)
            except FeedUnavailable as exc:
                last_error = str(exc)
                continue
            except requests.RequestException as exc:
                last_error = f"Error de red: {exc}"
                self._send_to_dlq(source_id, feed_url, "network_error", {"error": str(exc)})
                continue

            result.articles = self._build_articles(entries, source_config, limit=source_config.get("limit"))
            result.success = True
            break

        if not result.success:
            self.miss_cache.add(domain)
            result.error_message = last_error or "Feed no disponible"
            self._emit_log(
                "warning",
                "collector.feed.unavailable",
                source_id=source_id,
                details={"domain": domain, "error": result.error_message},
            )

        result.processing_time = self._elapsed(start)
        self._emit_log(
            "info",
            "collector.fetch.completed",
            source_id=source_id,
            latency=result.processing_time,
            details={"articles_found": result.articles_found, "success": result.success},
        )
        return result

    def collect_fallback_domains(self, domains: Iterable[str], language: str = "es") -> List[ScannedArticle]:
        """
        Respaldo rápido cuando un lote de NewsAPI falla: feed conocido o
        descubrimiento en rutas comunes, hasta 10 dominios y 5 entradas por feed.
        """
        sources = get_feed_sources(list(domains)[:FALLBACK_MAX_DOMAINS])
        articles: List[ScannedArticle] = []
        for source_id, config in sources.items():
            config = {**config, "language": language, "limit": FALLBACK_ITEMS_PER_FEED}
            articles.extend(self.fetch_feed(source_id, config).articles)
        self._emit_log(
            "info",
            "collector.fallback.completed",
            details={"domains": len(sources), "articles_found": len(articles)},
        )
        return articles

    def collect_cuban_feeds(self) -> List[ScannedArticle]:
        """Feeds de medios independientes cubanos (respaldo del modo estricto)."""
        sources = {
            source_id: {**config, "origin": "cuba_rss"}
            for source_id, config in CUBAN_INDEPENDENT_FEEDS.items()
        }
        report = self.collect_from_multiple_sources(sources)
        if not report["articles"]:
            self.module_logger.warning(
                "⚠️ Ningún feed cubano devolvió artículos; revisar conectividad y certificados"
            )
        return report["articles"]

    # Descarga y parseo
    # =================

    def _fetch_feed(self, source_id: str, feed_url: str) -> Tuple[bytes, int]:
        """Descarga con reintentos; lanza FeedUnavailable si no hay feed."""
        max_retries = int(RATE_LIMITING_CONFIG["max_retries"])
        timeout = COLLECTION_CONFIG["request_timeout"]

        for attempt in range(max_retries + 1):
            try:
                response = self.session.get(feed_url, timeout=timeout)
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
                if attempt < max_retries:
                    self._sleep(backoff_delay(attempt))
                    continue
                raise FeedUnavailable(f"Sin respuesta de {feed_url}: {exc}") from exc

            if response.status_code in RETRYABLE_STATUS:
                if attempt < max_retries:
                    self._sleep(backoff_delay(attempt))
                    continue
                raise FeedUnavailable(f"HTTP {response.status_code} tras {max_retries} reintentos")

            if response.status_code in MISS_STATUS:
                raise FeedUnavailable(f"HTTP {response.status_code} en {feed_url}")

            response.raise_for_status()
            if len(response.content) > MAX_FEED_BYTES:
                raise FeedUnavailable(f"Feed demasiado grande: {len(response.content)} bytes")
            return response.content, response.status_code

        raise FeedUnavailable(f"Sin respuesta de {feed_url}")

    def _parse_entries(self, source_id: str, content: bytes) -> List[Any]:
        parsed = feedparser.parse(content)
        if parsed.bozo and not self._is_acceptable_bozo(parsed):
            if not parsed.entries:
                raise FeedUnavailable(f"Feed malformado: {parsed.bozo_exception}")
            self._emit_log(
                "debug",
                "collector.feed.bozo_tolerated",
                source_id=source_id,
                details={"error": str(parsed.bozo_exception)},
            )
        if not parsed.entries:
            raise FeedUnavailable("La respuesta no contiene entradas de feed")
        return list(parsed.entries)

    @staticmethod
    def _is_acceptable_bozo(parsed_feed) -> bool:
        if not parsed_feed.bozo:
            return True
        return parsed_feed.bozo_exception.__class__.__name__ in ACCEPTABLE_BOZO

    def _build_articles(
        self, entries: List[Any], source_config: Dict[str, Any], limit: Optional[int] = None
    ) -> List[ScannedArticle]:
        articles = []
        medio = source_config.get("name") or "Desconocido"
        origin = source_config.get("origin", "rss")
        for entry in entries[: limit or self.max_articles]:
            description = self._extract_summary(entry)
            try:
                articles.append(
                    ScannedArticle(
                        title=normalize_text(entry.get("title", "")),
                        description=description[:DESCRIPTION_MAX_CHARS],
                        content=self._extract_content(entry) or description,
                        url=entry.get("link", ""),
                        published_at=self._extract_published(entry),
                        medio=medio,
                        image_url=self._extract_image(entry),
                        origin=origin,
                    )
                )
            except ValidationError as exc:
                self._emit_log(
                    "debug",
                    "collector.article.invalid",
                    details={"url": entry.get("link"), "error": str(exc.errors()[:1])},
                )
        return articles

    @staticmethod
    def _extract_published(entry) -> Optional[Any]:
        for field in ("published_parsed", "updated_parsed", "published", "updated"):
            value = entry.get(field)
            if value:
                return value
        return None

    @staticmethod
    def _extract_summary(entry) -> str:
        for field in ("summary", "description"):
            value = entry.get(field)
            if value:
                return clean_html(value)
        return ""

    @staticmethod
    def _extract_content(entry) -> str:
        content = entry.get("content")
        if isinstance(content, list) and content:
            first = content[0]
            value = first.get("value", "") if isinstance(first, dict) else str(first)
            return clean_html(value)
        return ""

    @staticmethod
    def _extract_image(entry) -> Optional[str]:
        for media in entry.get("media_content") or []:
            if media.get("url"):
                return media["url"]
        for thumb in entry.get("media_thumbnail") or []:
            if thumb.get("url"):
                return thumb["url"]
        for link in entry.get("links") or []:
            if link.get("rel") == "enclosure" and str(link.get("type", "")).startswith("image/"):
                return link.get("href")
        return None
