# src/publishing/facebook_auto_publisher.py
# Publicación automática en Facebook
# ==================================

"""
Ciclo del auto-publicador: se ejecuta cada pocos minutos y publica como
mucho una noticia por vuelta, respetando franja horaria (hora de Cuba),
límite diario e intervalo mínimo entre publicaciones.

Las candidatas se recorren por tramos de prioridad (Cuba hoy primero,
evergreen al final) y dentro de cada tramo la más antigua va primero.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from config.settings import DEFAULT_TENANT, FACEBOOK_CONFIG
from src.storage import DatabaseManager, get_database_manager
from src.utils.datetime_utils import cuba_hour, ensure_utc, parse_to_utc, start_of_cuba_day, utc_now
from src.utils.logger import create_module_logger

from .facebook_publisher import FacebookPublishError, FacebookPublisher

logger = create_module_logger("facebook_auto")

PRIORITY_CATEGORIES = ("Cuba", "Tendencia", "Tecnología")
PRIORITY_MAX_AGE_DAYS = 7
OTHER_MAX_AGE_DAYS = 5


@dataclass(frozen=True)
class CandidateTier:
    """Tramo de prioridad: filtros para ``find_facebook_candidate``."""

    name: str
    build: Callable[[datetime], Dict[str, Any]]


def _tiers() -> List[CandidateTier]:
    def days(now: datetime, n: int) -> datetime:
        return now - timedelta(days=n)

    return [
        CandidateTier("cubaToday", lambda now: {"category": "Cuba", "published_from": start_of_cuba_day(now)}),
        CandidateTier(
            "cuba48h",
            lambda now: {
                "category": "Cuba",
                "published_from": now - timedelta(hours=48),
                "published_before": start_of_cuba_day(now),
            },
        ),
        CandidateTier(
            "cuba7d",
            lambda now: {
                "category": "Cuba",
                "published_from": days(now, 7),
                "published_before": now - timedelta(hours=48),
            },
        ),
        CandidateTier("tendencia3d", lambda now: {"category": "Tendencia", "published_from": days(now, 3)}),
        CandidateTier(
            "tendencia7d",
            lambda now: {"category": "Tendencia", "published_from": days(now, 7), "published_before": days(now, 3)},
        ),
        CandidateTier("tecnologia", lambda now: {"category": "Tecnología", "published_from": days(now, 7)}),
        CandidateTier(
            "otrasCateg", lambda now: {"exclude_priority": True, "published_from": days(now, OTHER_MAX_AGE_DAYS)}
        ),
        CandidateTier("evergreen", lambda now: {"evergreen": True}),
    ]


CANDIDATE_TIERS = _tiers()


def is_within_time_window(start_hour: int, end_hour: int, hour: int) -> bool:
    """Franja [start, end) en horas de Cuba; puede cruzar medianoche; start == end es 24/7."""
    if start_hour == end_hour:
        return True
    if start_hour < end_hour:
        return start_hour <= hour < end_hour
    return hour >= start_hour or hour < end_hour


def should_publish_now(last_published_at: Optional[datetime], interval_minutes: int, now: datetime) -> bool:
    if not last_published_at:
        return True
    elapsed = (ensure_utc(now) - ensure_utc(last_published_at)).total_seconds() / 60
    return elapsed >= interval_minutes


def is_news_a_facebook_candidate(news: Any, now: Optional[datetime] = None) -> bool:
    """Mismas reglas de frescura que los tramos, aplicadas a una sola noticia."""
    if news is None or news.status != "published":
        return False
    if news.published_to_facebook:
        return False
    if news.facebook_status and news.facebook_status != "not_shared":
        return False
    if not news.published_at:
        return False

    now = now or utc_now()
    age = ensure_utc(now) - ensure_utc(news.published_at)
    if age < timedelta(minutes=FACEBOOK_CONFIG.get("cooldown_minutes", 5)):
        return False
    if news.is_evergreen:
        return True
    if (news.categoria or "") in PRIORITY_CATEGORIES:
        return age <= timedelta(days=PRIORITY_MAX_AGE_DAYS)
    return age <= timedelta(days=OTHER_MAX_AGE_DAYS)


def _scheduler_settings(config: Any) -> Dict[str, Any]:
    raw = dict(config.facebook_scheduler or {})
    return {
        "enabled": bool(raw.get("enabled")),
        "intervalMinutes": int(raw.get("intervalMinutes") or FACEBOOK_CONFIG.get("interval_minutes", 30)),
        "startHour": int(raw.get("startHour", FACEBOOK_CONFIG.get("start_hour", 9))),
        "endHour": int(raw.get("endHour", FACEBOOK_CONFIG.get("end_hour", 23))),
        "maxPerDay": int(raw.get("maxPerDay") or 0),
        "lastPublishedAt": parse_to_utc(raw.get("lastPublishedAt")),
    }


class FacebookAutoPublisher:
    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        publisher: Optional[FacebookPublisher] = None,
    ):
        self.db = db_manager or get_database_manager()
        self.publisher = publisher or FacebookPublisher()

    def get_next_candidate(self, tenant_id: Optional[str] = None, now: Optional[datetime] = None):
        now = now or utc_now()
        cooldown = now - timedelta(minutes=FACEBOOK_CONFIG.get("cooldown_minutes", 5))
        for tier in CANDIDATE_TIERS:
            candidate = self.db.find_facebook_candidate(
                tenant_id=tenant_id, published_until=cooldown, **tier.build(now)
            )
            if candidate:
                logger.debug(f"🎯 Candidata {candidate.id} en tramo {tier.name}")
                return candidate
        return None

    def count_today_publications(self, tenant_id: Optional[str] = None, now: Optional[datetime] = None) -> int:
        return self.db.count_facebook_published_since(start_of_cuba_day(now), tenant_id)

    def run(self, tenant_id: str = DEFAULT_TENANT, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Una vuelta del ciclo; ``reason`` explica por qué no se publicó."""
        now = ensure_utc(now) if now else utc_now()
        settings = _scheduler_settings(self.db.get_ai_config(tenant_id))

        if not settings["enabled"]:
            return {"published": False, "reason": "disabled"}

        hour = cuba_hour(now)
        if not is_within_time_window(settings["startHour"], settings["endHour"], hour):
            return {
                "published": False,
                "reason": "outside_time_window",
                "currentHour": hour,
                "startHour": settings["startHour"],
                "endHour": settings["endHour"],
            }

        if settings["maxPerDay"] > 0:
            today = self.count_today_publications(tenant_id, now)
            if today >= settings["maxPerDay"]:
                return {
                    "published": False,
                    "reason": "daily_limit_reached",
                    "todayCount": today,
                    "maxPerDay": settings["maxPerDay"],
                }

        last = settings["lastPublishedAt"]
        if not should_publish_now(last, settings["intervalMinutes"], now):
            return {
                "published": False,
                "reason": "interval_not_reached",
                "elapsedMinutes": int((now - last).total_seconds() // 60),
                "requiredMinutes": settings["intervalMinutes"],
            }

        candidate = self.get_next_candidate(tenant_id, now)
        if not candidate:
            return {"published": False, "reason": "no_candidates"}

        locked = self.db.try_lock_news_for_facebook(candidate.id, now)
        if not locked:
            logger.warning(f"⚠️ Noticia {candidate.id} ya tomada por otro proceso")
            return {"published": False, "reason": "already_publishing", "newsId": candidate.id}

        try:
            result = self.publisher.publish_news(locked, lock_held=True)
        except FacebookPublishError as exc:
            already = exc.code == "ALREADY_PUBLISHED"
            self.db.mark_news_facebook_error(candidate.id, str(exc), "published" if already else "error")
            logger.error(f"❌ Error publicando noticia {candidate.id} en Facebook: {exc}")
            return {
                "published": False,
                "reason": "already_published" if already else "publish_error",
                "newsId": candidate.id,
                "error": str(exc),
            }

        self.db.mark_news_facebook_published(candidate.id, result.post_id, result.permalink, now)
        self.db.update_ai_config({"facebook_scheduler": {"lastPublishedAt": now}}, tenant_id)
        logger.info(f"📘 Noticia {candidate.id} publicada en Facebook ({result.post_id})")
        return {
            "published": True,
            "reason": "published",
            "newsId": candidate.id,
            "newsTitle": candidate.titulo,
            "postId": result.post_id,
            "permalink": result.permalink,
        }

    def get_schedule_summary(self, tenant_id: str = DEFAULT_TENANT, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = ensure_utc(now) if now else utc_now()
        settings = _scheduler_settings(self.db.get_ai_config(tenant_id))

        by_tier = {
            tier.name: self.db.count_facebook_candidates(tenant_id=tenant_id, **tier.build(now))
            for tier in CANDIDATE_TIERS
        }
        last = settings["lastPublishedAt"]
        next_slot = None
        if settings["enabled"] and last:
            next_slot = (last + timedelta(minutes=settings["intervalMinutes"])).isoformat()

        return {
            "enabled": settings["enabled"],
            "intervalMinutes": settings["intervalMinutes"],
            "startHour": settings["startHour"],
            "endHour": settings["endHour"],
            "maxPerDay": settings["maxPerDay"],
            "candidatesCount": sum(by_tier.values()),
            "candidatesByPriority": by_tier,
            "publishedToday": self.count_today_publications(tenant_id, now),
            "lastPublishedAt": last.isoformat() if last else None,
            "nextSlotTheoretical": next_slot,
            "isWithinTimeWindow": is_within_time_window(settings["startHour"], settings["endHour"], cuba_hour(now)),
        }


_auto_publisher: Optional[FacebookAutoPublisher] = None


def get_facebook_auto_publisher() -> FacebookAutoPublisher:
    global _auto_publisher
    if _auto_publisher is None:
        _auto_publisher = FacebookAutoPublisher()
    return _auto_publisher


def run_facebook_auto_publisher(tenant_id: str = DEFAULT_TENANT, now: Optional[datetime] = None) -> Dict[str, Any]:
    try:
        return get_facebook_auto_publisher().run(tenant_id, now)
    except SQLAlchemyError as exc:
        logger.error(f"❌ Error del sistema en el auto-publicador de Facebook: {exc}")
        return {"published": False, "reason": "system_error", "error": str(exc)}


def get_facebook_schedule_summary(tenant_id: str = DEFAULT_TENANT, now: Optional[datetime] = None) -> Dict[str, Any]:
    return get_facebook_auto_publisher().get_schedule_summary(tenant_id, now)
