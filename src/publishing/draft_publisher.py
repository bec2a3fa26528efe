# src/publishing/draft_publisher.py
# Publicación y programación de borradores
# ========================================

"""
Convierte borradores en noticias (``NewsPost``), programa borradores en
franjas horarias de Cuba y publica los programados cuya hora llegó.

La publicación es idempotente: un borrador con ``published_as`` que
apunta a una noticia existente devuelve esa noticia sin crear otra.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from config.settings import DEFAULT_TENANT, PUBLISHING_CONFIG
from src.storage import DatabaseManager, get_database_manager
from src.utils.datetime_utils import cuba_datetime, cuba_hour, ensure_utc, format_display, utc_now
from src.utils.logger import create_module_logger

logger = create_module_logger("publishing")

MIN_TITLE_CHARS = 10
COVER_KIND_PRIORITY = ("ai", "processed")


class PublishingError(Exception):
    def __init__(self, message: str, code: str = "PUBLISH_ERROR", http_status: int = 400):
        super().__init__(message)
        self.code = code
        self.http_status = http_status


@dataclass
class PublishResult:
    news: Any
    draft: Any
    already_published: bool = False


def select_cover(draft: Any) -> str:
    """
    Portada de la noticia: la generada con IA, luego la procesada desde la
    fuente y luego cualquier portada disponible; '' si no hay ninguna.

    La imagen del artículo original (``ai_metadata.sourceImageUrl``) cuenta
    como procesada. Un fallo al generar con IA no borra una portada existente.
    """
    metadata = getattr(draft, "ai_metadata", None) or {}
    candidates = [
        (draft.cover_image_url, draft.image_kind),
        (metadata.get("sourceImageUrl"), "processed"),
    ]
    candidates = [(url, kind) for url, kind in candidates if url]
    for wanted in COVER_KIND_PRIORITY:
        for url, kind in candidates:
            if kind == wanted:
                return url
    return candidates[0][0] if candidates else ""


def _slot_in_window(slot: datetime, start_hour: int, end_hour: int) -> datetime:
    """Mueve el slot al inicio de la franja si cae fuera de ella."""
    hour = cuba_hour(slot)
    if hour >= end_hour:
        return cuba_datetime(slot + timedelta(days=1), start_hour)
    if hour < start_hour:
        return cuba_datetime(slot, start_hour)
    return slot


def first_auto_slot(now: datetime, interval_minutes: int, start_hour: int, end_hour: int) -> datetime:
    hour = cuba_hour(now)
    if hour < start_hour:
        return cuba_datetime(now, start_hour)
    if hour < end_hour:
        return (now + timedelta(minutes=interval_minutes)).replace(second=0, microsecond=0)
    return cuba_datetime(now + timedelta(days=1), start_hour)


def plan_slots(
    count: int, now: datetime, interval_minutes: int, start_hour: int, end_hour: int
) -> List[datetime]:
    slots: List[datetime] = []
    slot = first_auto_slot(now, interval_minutes, start_hour, end_hour)
    for _ in range(count):
        slots.append(slot)
        slot = _slot_in_window(slot + timedelta(minutes=interval_minutes), start_hour, end_hour)
    return slots


class DraftPublisher:
    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db = db_manager or get_database_manager()
        self._publish_guard = threading.Lock()

    def publish_draft_to_news(
        self,
        draft: Any,
        publish_date: Optional[datetime] = None,
        category_override: Optional[str] = None,
        tags_override: Optional[Sequence[str]] = None,
        author_name: Optional[str] = None,
        schedule_status: str = "published",
    ) -> PublishResult:
        if draft.published_as:
            existing = self.db.get_news_post(draft.published_as)
            if existing:
                logger.info(f"⚠️ Borrador {draft.id} ya publicado como noticia {existing.id}")
                return PublishResult(news=existing, draft=draft, already_published=True)

        publish_date = ensure_utc(publish_date) if publish_date else utc_now()
        categoria = category_override or draft.categoria or "General"
        metadata = draft.ai_metadata or {}
        news_fields = {
            "tenant_id": draft.tenant_id or DEFAULT_TENANT,
            "titulo": draft.titulo,
            "bajada": draft.bajada or "",
            "contenido": draft.contenido_html or draft.contenido_markdown or "",
            "categoria": categoria,
            "etiquetas": list(tags_override) if tags_override is not None else list(draft.etiquetas or []),
            "imagen": select_cover(draft),
            "image_provider": draft.image_provider or "dall-e-3",
            "autor": author_name or PUBLISHING_CONFIG.get("default_author", "Redactor IA"),
            "published_at": publish_date,
            "status": schedule_status,
            "mode": draft.mode or "factual",
            "ai_metadata": {
                "categoryConfidence": metadata.get("categoryConfidence"),
                "originalityScore": metadata.get("originalityScore"),
                "contentOrigin": metadata.get("contentOrigin"),
                "model": metadata.get("model", ""),
                "generatedFrom": draft.id,
            },
        }

        updated, post = self.db.publish_draft_atomically(draft.id, news_fields, publish_date)
        if post is None:
            raise PublishingError(f"Borrador {draft.id} no encontrado", "NOT_FOUND", 404)

        logger.info(
            f"✅ Borrador {draft.id} publicado como noticia {post.id} "
            f"({categoria}, imagen: {'sí' if post.imagen else 'no'})"
        )
        return PublishResult(news=post, draft=updated)

    def publish_approved_draft(
        self,
        draft_id: int,
        schedule_at: Optional[datetime] = None,
        category_override: Optional[str] = None,
        tags_override: Optional[Sequence[str]] = None,
        author_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PublishResult:
        """
        Publicación manual desde la API: solo borradores aprobados con título válido.

        Raises:
            PublishingError: inexistente (404), no aprobado o título corto (400).
        """
        draft = self.db.get_draft(draft_id)
        if not draft:
            raise PublishingError(f"Borrador {draft_id} no encontrado", "NOT_FOUND", 404)
        if draft.review_status != "approved":
            raise PublishingError("El borrador debe estar aprobado antes de publicar", "NOT_APPROVED", 400)
        if draft.published_as:
            return self.publish_draft_to_news(draft)
        if len((draft.titulo or "").strip()) < MIN_TITLE_CHARS:
            raise PublishingError("El borrador debe tener un título válido (≥10 caracteres)", "INVALID_TITLE", 400)

        now = now or utc_now()
        schedule_at = ensure_utc(schedule_at) if schedule_at else None
        status = "scheduled" if schedule_at and schedule_at > now else "published"
        return self.publish_draft_to_news(
            draft,
            publish_date=schedule_at or now,
            category_override=category_override,
            tags_override=tags_override,
            author_name=author_name,
            schedule_status=status,
        )

    def schedule_draft(self, draft_id: int, when: datetime, now: Optional[datetime] = None):
        """
        Raises:
            PublishingError: fecha no futura o ya publicado (400), inexistente (404).
        """
        now = now or utc_now()
        when = ensure_utc(when)
        if when <= now:
            raise PublishingError("La fecha debe ser futura", "INVALID_DATE", 400)

        draft = self.db.get_draft(draft_id)
        if not draft:
            raise PublishingError(f"Borrador {draft_id} no encontrado", "NOT_FOUND", 404)
        if draft.publish_status == "publicado" or draft.published_as:
            raise PublishingError("El borrador ya está publicado", "ALREADY_PUBLISHED", 400)

        updated = self.db.update_draft(draft_id, scheduled_at=when, publish_status="programado")
        logger.info(f"📅 Borrador {draft_id} programado para {format_display(when)}")
        return updated

    def auto_schedule_drafts(self, tenant_id: str = DEFAULT_TENANT, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Reparte los borradores pendientes en la franja horaria de Cuba.

        Raises:
            PublishingError: si la programación automática está desactivada.
        """
        config = self.db.get_ai_config(tenant_id)
        if not config.auto_schedule_enabled:
            raise PublishingError("La programación automática está desactivada", "AUTO_SCHEDULE_DISABLED", 400)

        now = ensure_utc(now) if now else utc_now()
        drafts = self.db.get_pending_unscheduled_drafts(
            tenant_id, limit=PUBLISHING_CONFIG.get("auto_schedule_batch_size", 50)
        )
        if not drafts:
            logger.info("📭 No hay borradores pendientes para programar")
            return []

        interval = config.auto_schedule_interval or PUBLISHING_CONFIG["auto_schedule_interval_minutes"]
        start_hour = config.auto_schedule_start_hour
        if start_hour is None:
            start_hour = PUBLISHING_CONFIG["auto_schedule_start_hour"]
        end_hour = config.auto_schedule_end_hour or PUBLISHING_CONFIG["auto_schedule_end_hour"]
        logger.info(f"🗓️ Auto-programación: franja {start_hour}:00-{end_hour}:00 Cuba, cada {interval} min")

        scheduled = []
        for draft, slot in zip(drafts, plan_slots(len(drafts), now, interval, start_hour, end_hour)):
            self.db.update_draft(draft.id, scheduled_at=slot, publish_status="programado")
            scheduled.append({"id": draft.id, "titulo": draft.titulo, "scheduled_at": slot.isoformat()})

        logger.info(f"✅ {len(scheduled)} borradores programados automáticamente")
        return scheduled

    def publish_scheduled_drafts(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Publica los borradores programados vencidos y libera las noticias
        en estado ``scheduled`` cuya fecha ya llegó. Una sola ejecución a la vez.
        """
        if not self._publish_guard.acquire(blocking=False):
            logger.debug("⏭️ Publicación de programados ya en curso")
            return {"found": 0, "published": 0, "failed": 0, "released": 0, "skipped": 1}

        try:
            now = now or utc_now()
            due = self.db.get_due_scheduled_drafts(now, limit=PUBLISHING_CONFIG.get("due_batch_size", 10))
            published = failed = 0
            for draft in due:
                try:
                    self.publish_draft_to_news(draft, publish_date=now)
                    published += 1
                except (PublishingError, SQLAlchemyError) as exc:
                    failed += 1
                    logger.error(f"❌ Error publicando borrador programado {draft.id}: {exc}")
            if due:
                logger.info(f"📅 {published}/{len(due)} borradores programados publicados")

            try:
                released = self.db.release_due_news(now)
            except SQLAlchemyError as exc:
                released = 0
                logger.error(f"❌ Error liberando noticias programadas: {exc}")
            return {"found": len(due), "published": published, "failed": failed, "released": released, "skipped": 0}
        finally:
            self._publish_guard.release()


_publisher: Optional[DraftPublisher] = None


def get_draft_publisher() -> DraftPublisher:
    global _publisher
    if _publisher is None:
        _publisher = DraftPublisher()
    return _publisher
