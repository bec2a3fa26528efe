# src/scanner/topic_scanner.py
# Orquestador de escaneo del Redactor IA
# ======================================

"""
Escaneo de fuentes: recolecta artículos de NewsAPI y RSS, los filtra, los
agrupa en temas, puntúa cada tema y guarda los mejores como ``pending``.

Un escaneo por tenant a la vez: el candado en memoria rechaza la segunda
llamada con ``ScanInProgressError`` y ``AiConfig.is_scanning`` refleja el
estado para la API y el scheduler. Ambos se liberan siempre en ``finally``.
"""

import functools
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from config.settings import DEFAULT_TENANT, SCANNER_CONFIG
from config.sources import (
    HISPANIC_DOMAINS,
    NEWSAPI_PRIORITY_DOMAINS,
    OFFICIAL_BLACKLIST,
    TECH_TREND_BYPASS,
)

from src.classification import GENERAL, category_for_host
from src.collectors import NewsAPICollector, NewsAPIUnavailable, RSSCollector
from src.collectors.newsapi_collector import NORMAL_MODE_QUERY, window_start
from src.contracts import ScannedArticle
from src.scheduler.frequency import calculate_optimal_frequency, compute_next_scan_at
from src.scoring import ImpactScorer, apply_cuba_boost, final_score
from src.stats.stats_service import StatsService
from src.storage import DatabaseManager, get_database_manager
from src.utils.datetime_utils import utc_now
from src.utils.logger import ScanSessionLogger, create_module_logger
from src.utils.similarity import check_against_existing, deduplicate_by_title
from src.utils.url_canonicalizer import canonical_url, host_matches, normalize_host, normalize_hosts

from .cuba_filter import StrictCubaFilter, get_cuba_strict_query
from .freshness import apply_freshness_window, cap_per_source, freshness_score, is_new_article
from .topic_grouping import Topic, group_into_topics

logger = create_module_logger("scanner")

MAX_TOPICS_RANGE = (1, 20)
FRESHNESS_WINDOW_RANGE = (12, 168)
PER_SOURCE_CAP_RANGE = (1, 10)
STRICT_FRESHNESS_TIE = 0.1
STORED_SOURCES = 3


class ScanInProgressError(Exception):
    """Ya hay un escaneo corriendo para el tenant."""

    code = "SCAN_IN_PROGRESS"
    http_status = 429

    def __init__(self, tenant_id: str):
        super().__init__("Ya hay un escaneo en curso. Por favor espera a que termine.")
        self.tenant_id = tenant_id


_TENANT_LOCKS: Dict[str, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


def _tenant_lock(tenant_id: str) -> threading.Lock:
    with _LOCKS_GUARD:
        return _TENANT_LOCKS.setdefault(tenant_id, threading.Lock())


def _clamp(value: Any, bounds: tuple, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = default
    low, high = bounds
    return max(low, min(high, number))


@dataclass
class ScanSettings:
    """Valores de AiConfig ya recortados a sus rangos válidos."""

    max_topics: int
    freshness_window_hours: int
    per_source_cap: int
    strict_cuba: bool
    newsapi_enabled: bool
    enforce_allowlist: bool
    allowlist: List[str]
    cuba_keywords: List[str]
    rss_whitelist: List[Dict[str, Any]]
    impact_weights: Dict[str, float]
    scan_frequency: str
    statistics: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_ai_config(cls, config: Any) -> "ScanSettings":
        allowlist = [
            host for host in normalize_hosts(config.trusted_sources or []) if host not in OFFICIAL_BLACKLIST
        ]
        return cls(
            max_topics=_clamp(
                config.max_topics_per_scan, MAX_TOPICS_RANGE, SCANNER_CONFIG["max_topics_per_scan"]
            ),
            freshness_window_hours=_clamp(
                config.freshness_window_hours,
                FRESHNESS_WINDOW_RANGE,
                SCANNER_CONFIG["freshness_window_hours"],
            ),
            per_source_cap=_clamp(
                config.per_source_cap, PER_SOURCE_CAP_RANGE, SCANNER_CONFIG["per_source_cap"]
            ),
            strict_cuba=bool(config.strict_cuba),
            newsapi_enabled=config.newsapi_enabled is not False,
            enforce_allowlist=bool(config.enforce_source_allowlist),
            allowlist=allowlist,
            cuba_keywords=list(config.cuba_keywords or []),
            rss_whitelist=list(config.rss_whitelist or []),
            impact_weights=dict(config.impact_weights or {}),
            scan_frequency=config.scan_frequency or "3h",
            statistics=dict(config.statistics or {}),
        )

    def summary(self) -> Dict[str, Any]:
        return {
            "max_topics": self.max_topics,
            "freshness_window_hours": self.freshness_window_hours,
            "per_source_cap": self.per_source_cap,
            "strict_cuba": self.strict_cuba,
            "newsapi_enabled": self.newsapi_enabled,
            "enforce_allowlist": self.enforce_allowlist,
            "allowlist_hosts": len(self.allowlist),
        }


# Selección final
# ===============


def _strict_order(a: Topic, b: Topic) -> int:
    if abs(a.freshness_avg - b.freshness_avg) > STRICT_FRESHNESS_TIE:
        return -1 if a.freshness_avg > b.freshness_avg else 1
    if a.final_score == b.final_score:
        return 0
    return -1 if a.final_score > b.final_score else 1


def select_topics(
    topics: Sequence[Topic],
    max_topics: int,
    strict: bool,
    quotas: Optional[Dict[str, int]] = None,
) -> List[Topic]:
    """
    Modo estricto: frescura primero (si la diferencia supera 0.1), luego
    ``final_score``. Modo normal: cuotas por categoría y el resto por score.
    """
    if strict:
        return sorted(topics, key=functools.cmp_to_key(_strict_order))[:max_topics]

    quotas = SCANNER_CONFIG["category_quotas"] if quotas is None else quotas
    by_score = sorted(topics, key=lambda t: t.final_score, reverse=True)
    picked: List[Topic] = []
    for category, need in quotas.items():
        if need <= 0:
            continue
        bucket = [t for t in by_score if (t.categoria_sugerida or GENERAL) == category]
        picked.extend(bucket[:need])

    if len(picked) < max_topics:
        remaining = [t for t in by_score if not any(t is p for p in picked)]
        picked.extend(remaining[: max_topics - len(picked)])
    return picked[:max_topics]


class TopicScanner:
    """Coordina recolección, filtrado, agrupación, puntuación y guardado."""

    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        newsapi_collector: Optional[NewsAPICollector] = None,
        rss_collector: Optional[RSSCollector] = None,
        cuba_filter_factory=StrictCubaFilter,
    ):
        self.db = db_manager or get_database_manager()
        self.stats = StatsService(self.db)
        self.newsapi = newsapi_collector or NewsAPICollector()
        self.rss = rss_collector or RSSCollector()
        self.cuba_filter_factory = cuba_filter_factory

    # API pública
    # ===========

    def scan_sources(self, tenant_id: str = DEFAULT_TENANT, scan_type: str = "manual") -> List[Any]:
        """
        Ejecuta un escaneo completo y devuelve los ``AiTopic`` guardados.

        Raises:
            ScanInProgressError: si el tenant ya tiene un escaneo en curso.
        """
        lock = _tenant_lock(tenant_id)
        if not lock.acquire(blocking=False):
            raise ScanInProgressError(tenant_id)

        start = time.time()
        session = ScanSessionLogger(str(uuid.uuid4())[:8], tenant_id, scan_type)
        origins: Dict[str, Any] = {"newsapi": 0, "rss": 0, "cuba_rss": 0, "fallback_rss": 0}
        saved: List[Any] = []

        try:
            self.db.set_scanning_flag(tenant_id, True)
            settings = ScanSettings.from_ai_config(self.db.get_ai_config(tenant_id))
            session.log_scan_start(settings.summary())

            # Las claves de idempotencia valen solo dentro de una corrida
            self.rss.reset_jobs()
            articles = self._collect(settings, session, origins)
            if not self.rss.is_healthy():
                session.logger.warning("⚠️ Más del 30% de los feeds RSS fallaron en este escaneo")
                origins["rss_unhealthy"] = True
            collected = len(articles)
            articles = self._filter_articles(articles, settings, session)
            topics = self._build_topics(articles, settings)
            grouped = len(topics)
            topics, skipped = self._deduplicate_topics(topics, tenant_id)

            selected = select_topics(topics, settings.max_topics, settings.strict_cuba)
            session.log_stage("seleccion", len(topics), len(selected))

            saved = self.db.save_topics(
                [topic.to_candidate(max_sources=STORED_SOURCES) for topic in selected], tenant_id
            )
            duration_ms = int((time.time() - start) * 1000)
            self.stats.log_scan(
                tenant_id=tenant_id,
                topics_found=len(saved),
                scan_type=scan_type,
                sources=origins,
                duration_ms=duration_ms,
                status="success",
            )
            self._update_config_after_scan(tenant_id, settings, len(saved))

            session.log_scan_summary(
                {
                    "articles_collected": collected,
                    "topics_grouped": grouped,
                    "topics_saved": len(saved),
                    "duplicates_skipped": skipped,
                    "duration_seconds": duration_ms / 1000,
                }
            )
            return saved
        except Exception as exc:
            session.logger.error(f"❌ Error en escaneo: {exc}")
            self.stats.log_scan(
                tenant_id=tenant_id,
                topics_found=len(saved),
                scan_type=scan_type,
                sources=origins,
                duration_ms=int((time.time() - start) * 1000),
                status="failed",
                error=str(exc),
            )
            raise
        finally:
            lock.release()
            try:
                self.db.set_scanning_flag(tenant_id, False)
            except Exception as exc:
                logger.error(f"❌ No se pudo desmarcar is_scanning para {tenant_id}: {exc}")
            session.logger.info(f"🔓 Candado de escaneo liberado para tenant: {tenant_id}")

    def get_scan_status(self, tenant_id: str = DEFAULT_TENANT) -> Dict[str, Any]:
        config = self.db.get_ai_config(tenant_id)
        last_log = self.db.get_last_scan_log(tenant_id)
        return {
            "is_scanning": bool(config.is_scanning) or _tenant_lock(tenant_id).locked(),
            "last_scan_at": config.last_scan_at.isoformat() if config.last_scan_at else None,
            "next_scan_at": config.next_scan_at.isoformat() if config.next_scan_at else None,
            "last_scan": last_log.to_dict() if last_log else None,
        }

    # Recolección
    # ===========

    def _collect(
        self, settings: ScanSettings, session: ScanSessionLogger, origins: Dict[str, Any]
    ) -> List[ScannedArticle]:
        articles: List[ScannedArticle] = []

        if settings.newsapi_enabled and self.newsapi.enabled:
            newsapi_articles = self._scan_newsapi(settings, session, origins)
            articles.extend(newsapi_articles)
            if settings.strict_cuba and not newsapi_articles:
                session.logger.warning(
                    "⚠️ NewsAPI devolvió 0 resultados. Activando respaldo RSS de medios cubanos..."
                )
                cuban = self.rss.collect_cuban_feeds()
                origins["cuba_rss"] = len(cuban)
                session.log_origin("cuba_rss", len(cuban))
                articles.extend(cuban)
        elif settings.newsapi_enabled:
            session.logger.warning("⚠️ NEWSAPI_KEY no configurada. Omitiendo NewsAPI.")

        rss_articles = self._scan_rss_whitelist(settings)
        origins["rss"] = len(rss_articles)
        session.log_origin("rss", len(rss_articles))
        articles.extend(rss_articles)
        return articles

    def _newsapi_request(self, settings: ScanSettings) -> Dict[str, Any]:
        """Consulta, dominios e idiomas según el modo del escaneo."""
        if settings.strict_cuba:
            domains = [d for d in NEWSAPI_PRIORITY_DOMAINS if d not in OFFICIAL_BLACKLIST]
            return {
                "query": get_cuba_strict_query(),
                "domains": domains,
                "languages": ["es"],
                "from_dt": window_start(settings.freshness_window_hours),
                "page_size": 100,
            }

        languages = ["en"]
        if any(d in HISPANIC_DOMAINS for d in settings.allowlist):
            languages.append("es")

        if settings.enforce_allowlist and settings.allowlist:
            return {
                "query": NORMAL_MODE_QUERY,
                "domains": settings.allowlist,
                "languages": languages,
                "from_dt": window_start(settings.freshness_window_hours),
                "page_size": 100,
            }

        return {
            "query": " OR ".join(settings.cuba_keywords) or get_cuba_strict_query(),
            "domains": [],
            "languages": languages,
            "from_dt": None,
            "page_size": min(settings.max_topics * 2, 50),
        }

    def _scan_newsapi(
        self, settings: ScanSettings, session: ScanSessionLogger, origins: Dict[str, Any]
    ) -> List[ScannedArticle]:
        request = self._newsapi_request(settings)
        try:
            articles = self.newsapi.fetch(**request)
        except NewsAPIUnavailable as exc:
            session.log_origin("newsapi", 0, error=str(exc))
            origins["newsapi_error"] = str(exc)
            articles = []
            failed_domains = exc.domains
        else:
            session.log_origin("newsapi", len(articles))
            failed_domains = self.newsapi.last_failed_domains

        origins["newsapi"] = len(articles)
        if failed_domains and not settings.strict_cuba:
            language = "es" if "es" in request["languages"] else "en"
            fallback = self.rss.collect_fallback_domains(failed_domains, language=language)
            origins["fallback_rss"] = len(fallback)
            session.log_origin("fallback_rss", len(fallback))
            articles = articles + fallback
        return articles

    def _scan_rss_whitelist(self, settings: ScanSettings) -> List[ScannedArticle]:
        sources: Dict[str, Dict[str, Any]] = {}
        for index, entry in enumerate(settings.rss_whitelist):
            if not isinstance(entry, dict) or entry.get("enabled") is False or not entry.get("url"):
                continue
            host = normalize_host(entry["url"])
            if settings.enforce_allowlist and not host_matches(host, settings.allowlist):
                logger.debug(f"RSS fuera de allowlist omitido: {host}")
                continue
            name = entry.get("nombre") or entry.get("name") or host
            sources[f"rss_{index}_{host}"] = {"name": name, "url": entry["url"]}

        if not sources:
            return []
        return self.rss.collect_from_multiple_sources(sources)["articles"]

    # Filtrado y construcción de temas
    # ================================

    def _filter_articles(
        self, articles: List[ScannedArticle], settings: ScanSettings, session: ScanSessionLogger
    ) -> List[ScannedArticle]:
        before = len(articles)
        enriched: List[ScannedArticle] = []
        for article in articles:
            host = normalize_host(article.host or article.url)
            if host in OFFICIAL_BLACKLIST:
                continue
            article.host = host
            if not article.category:
                article.category = category_for_host(host)
            enriched.append(article)
        session.log_stage("blacklist oficial", before, len(enriched))

        if settings.strict_cuba:
            cuba_filter = self.cuba_filter_factory()
            kept = [
                a
                for a in enriched
                if any(d in a.host for d in TECH_TREND_BYPASS) or cuba_filter.evaluate(a).passed
            ]
            session.log_stage("filtro Cuba estricto", len(enriched), len(kept))
            if enriched and not kept:
                session.logger.warning("⚠️ strict_cuba=ON → 0 resultados tras filtro")
            enriched = kept

        seen = set()
        unique: List[ScannedArticle] = []
        for article in enriched:
            canonical = canonical_url(article.url)
            if not canonical or canonical in seen:
                continue
            seen.add(canonical)
            unique.append(article)
        session.log_stage("dedupe URL", len(enriched), len(unique))

        now = utc_now()
        fresh = apply_freshness_window(unique, settings.freshness_window_hours, now)
        session.log_stage("ventana de frescura", len(unique), len(fresh))
        capped = cap_per_source(fresh, settings.per_source_cap)
        session.log_stage("cap por fuente", len(fresh), len(capped))

        for article in capped:
            article.freshness = freshness_score(article.published_at, now)
        return capped

    def _build_topics(self, articles: List[ScannedArticle], settings: ScanSettings) -> List[Topic]:
        scorer = ImpactScorer(settings.impact_weights or None)
        now = utc_now()
        topics = group_into_topics(articles, SCANNER_CONFIG.get("group_similarity_threshold", 0.5))

        for topic in topics:
            result = scorer.score_topic(topic.scoring_input(), now)
            main = topic.articles[0]
            topic.impacto = apply_cuba_boost(
                result.score,
                f"{topic.titulo_sugerido} {topic.resumen_breve}",
                main.url,
                topic.categoria_sugerida,
            )
            topic.confianza = result.confidence
            top = topic.articles[:5]
            topic.freshness_avg = sum(a.freshness for a in top) / len(top) if top else 0.0
            topic.final_score = final_score(topic.impacto, topic.freshness_avg)
            topic.metadata = {
                **result.metrics,
                "impactoBase": result.score,
                "freshnessAvg": round(topic.freshness_avg, 3),
                "isNew": is_new_article(main.published_at, now),
                "finalScore": round(topic.final_score, 2),
                "origins": sorted({a.origin for a in topic.articles}),
            }
        return topics

    def _deduplicate_topics(self, topics: List[Topic], tenant_id: str) -> tuple:
        existing = self.db.get_pending_topic_titles(tenant_id)
        fresh: List[Topic] = []
        skipped = 0
        for topic in topics:
            match = check_against_existing(topic.titulo_sugerido, existing)
            if match:
                logger.debug(
                    f"🔄 Tema ya pendiente ({match.matched_by}): {topic.titulo_sugerido[:60]}"
                )
                skipped += 1
                continue
            fresh.append(topic)

        result = deduplicate_by_title(fresh)
        skipped += result.duplicates_skipped
        if skipped:
            logger.info(f"🧹 Temas duplicados omitidos: {skipped}")
        return result.unique, skipped

    # Estado posterior
    # ================

    def _update_config_after_scan(self, tenant_id: str, settings: ScanSettings, topics_saved: int) -> None:
        now = utc_now()
        stats = settings.statistics
        previous = stats.get("avgTopicsPerScan")
        if previous is None:
            average = float(topics_saved)
        else:
            average = round(0.7 * float(previous) + 0.3 * topics_saved, 1)

        # Las tasas de selección y aprobación salen del uso real del periodo
        usage = self.stats.get_usage_stats(tenant_id=tenant_id)
        statistics = {
            "avgTopicsPerScan": average,
            "lastScanTopics": topics_saved,
            "totalScans": int(stats.get("totalScans") or 0) + 1,
            "selectionRate": usage["selectionRate"],
            "approvalRate": usage["approvalRate"],
        }
        statistics["lastOptimizationSuggestion"] = calculate_optimal_frequency(
            settings.scan_frequency, statistics
        )

        self.db.update_ai_config(
            {
                "last_scan_at": now,
                "next_scan_at": compute_next_scan_at(settings.scan_frequency, now),
                "statistics": statistics,
            },
            tenant_id,
        )


_scanner: Optional[TopicScanner] = None


def get_topic_scanner() -> TopicScanner:
    global _scanner
    if _scanner is None:
        _scanner = TopicScanner()
    return _scanner


def scan_sources(tenant_id: str = DEFAULT_TENANT, scan_type: str = "manual") -> List[Any]:
    return get_topic_scanner().scan_sources(tenant_id, scan_type)
