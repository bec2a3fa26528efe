# src/serving/api.py
# API HTTP del Redactor IA
# ========================

"""
Rutas FastAPI del flujo editorial: escaneo de temas, generación de
borradores, revisión, publicación, configuración, estadísticas y Facebook.

Los errores de dominio llevan ``code`` y ``http_status`` y se responden como
``{"error": ..., "code": ...}``; un ``ValueError`` suelto es ``INVALID_INPUT``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from dateutil import parser as date_parser
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import func

from config.settings import DEFAULT_TENANT
from src.generation import (
    DraftGenerator,
    DraftRejectedError,
    GenerationInProgressError,
    ImageProviderError,
    ReviewError,
    ReviewService,
)
from src.publishing import (
    DraftPublisher,
    FacebookAutoPublisher,
    FacebookPublishError,
    PublishingError,
)
from src.scanner import ScanInProgressError, TopicScanner
from src.stats import StatsService
from src.storage.database import DatabaseManager, get_database_manager
from src.storage.models import AiConfig
from src.utils.logger import create_module_logger

logger = create_module_logger("api")

DOMAIN_ERRORS = (
    ScanInProgressError,
    GenerationInProgressError,
    DraftRejectedError,
    ImageProviderError,
    ReviewError,
    PublishingError,
    FacebookPublishError,
)


class GenerateRequest(BaseModel):
    """Temas a redactar (máximo 10 por llamada)."""

    topic_ids: List[int] = Field(min_length=1, max_length=10)
    mode: Literal["factual", "opinion"] = "factual"
    format_style: Literal["standard", "lectura_viva"] = "standard"
    user: Optional[str] = None


class DraftUpdateRequest(BaseModel):
    titulo: Optional[str] = Field(default=None, min_length=1, max_length=500)
    bajada: Optional[str] = None
    categoria: Optional[str] = None
    etiquetas: Optional[List[str]] = None
    contenido_html: Optional[str] = None


class ReviewRequest(BaseModel):
    action: Literal["approve", "reject", "request_changes"]
    notes: Optional[str] = None
    user: Optional[str] = None


class RevisionRequest(BaseModel):
    notes: Optional[str] = None
    model: Optional[str] = None
    user: Optional[str] = None


class ScheduleRequest(BaseModel):
    """Fecha de publicación; sin zona horaria se toma como UTC."""

    scheduled_at: datetime

    @field_validator("scheduled_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class PublishRequest(BaseModel):
    schedule_at: Optional[datetime] = None
    categoria: Optional[str] = None
    etiquetas: Optional[List[str]] = None
    autor: Optional[str] = None


class ScanRequest(BaseModel):
    scan_type: Literal["manual", "cuba_estricto"] = "manual"


class FacebookSchedulerUpdate(BaseModel):
    """Ajustes parciales del auto-publicador de Facebook."""

    model_config = ConfigDict(extra="forbid")

    enabled: Optional[bool] = None
    intervalMinutes: Optional[int] = None
    startHour: Optional[int] = None
    endHour: Optional[int] = None
    maxPerDay: Optional[int] = None


class ConfigUpdateRequest(BaseModel):
    """Campos editables de AiConfig; los de control interno no se aceptan."""

    model_config = ConfigDict(extra="forbid")

    scan_frequency: Optional[Literal["manual", "2h", "3h", "4h", "6h", "12h", "24h"]] = None
    auto_generate_images: Optional[bool] = None
    max_topics_per_scan: Optional[int] = None
    min_sources_for_high_confidence: Optional[int] = None
    rss_whitelist: Optional[List[str]] = None
    trusted_sources: Optional[List[str]] = None
    enforce_source_allowlist: Optional[bool] = None
    newsapi_enabled: Optional[bool] = None
    cuba_keywords: Optional[List[str]] = None
    strict_cuba: Optional[bool] = None
    freshness_window_hours: Optional[int] = None
    per_source_cap: Optional[int] = None
    ai_model: Optional[str] = Field(default=None, min_length=1, max_length=60)
    image_provider: Optional[Literal["dall-e-3", "dall-e-2", "hailuo", "stable-diffusion", "midjourney"]] = None
    impact_weights: Optional[Dict[str, float]] = None
    auto_schedule_enabled: Optional[bool] = None
    auto_schedule_interval: Optional[int] = None
    auto_schedule_start_hour: Optional[int] = None
    auto_schedule_end_hour: Optional[int] = None
    facebook_scheduler: Optional[FacebookSchedulerUpdate] = None


@dataclass
class ServiceContainer:
    """Servicios que usan las rutas; cualquiera puede inyectarse en tests."""

    scanner: Optional[TopicScanner] = None
    generator: Optional[DraftGenerator] = None
    review: Optional[ReviewService] = None
    publisher: Optional[DraftPublisher] = None
    facebook: Optional[FacebookAutoPublisher] = None
    stats: Optional[StatsService] = None

    def fill_defaults(self, db_manager: DatabaseManager) -> "ServiceContainer":
        self.stats = self.stats or StatsService(db_manager)
        self.scanner = self.scanner or TopicScanner(db_manager)
        self.generator = self.generator or DraftGenerator(db_manager, stats=self.stats)
        self.review = self.review or ReviewService(db_manager, stats=self.stats)
        self.publisher = self.publisher or DraftPublisher(db_manager)
        self.facebook = self.facebook or FacebookAutoPublisher(db_manager)
        return self


def _parse_datetime(value: Optional[str], field: str) -> Optional[datetime]:
    if value in (None, ""):
        return None
    try:
        parsed = date_parser.isoparse(str(value))
    except (ValueError, TypeError) as exc:
        raise HTTPException(status_code=422, detail=f"invalid datetime for {field}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _not_found(entity: str, entity_id: int) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{entity} {entity_id} not found")


def create_app(
    database_manager: Optional[DatabaseManager] = None,
    services: Optional[ServiceContainer] = None,
) -> FastAPI:
    """Crea la aplicación FastAPI con sus rutas y manejadores de error."""

    db_manager = database_manager or get_database_manager()
    container = (services or ServiceContainer()).fill_defaults(db_manager)
    app = FastAPI(title="Redactor IA API", version="1.0.0")

    def get_db() -> DatabaseManager:
        return db_manager

    async def domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
        status = getattr(exc, "http_status", 400)
        if status >= 500:
            logger.error(f"❌ {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status,
            content={"error": str(exc), "code": getattr(exc, "code", "ERROR")},
        )

    for error_class in DOMAIN_ERRORS:
        app.add_exception_handler(error_class, domain_error_handler)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc), "code": "INVALID_INPUT"})

    # Salud
    # =====

    @app.get("/healthz")
    def health_probe(manager: DatabaseManager = Depends(get_db)) -> Dict[str, Any]:
        status = manager.get_health_status()
        return {
            "status": "ok" if status.get("status") == "healthy" else "degraded",
            "details": status,
        }

    @app.get("/readyz")
    def readiness_probe(manager: DatabaseManager = Depends(get_db)) -> Dict[str, Any]:
        """Responde ready cuando la base de datos contesta una consulta."""
        try:
            with manager.get_session() as session:
                session.query(func.count(AiConfig.id)).scalar()
        except Exception as exc:  # pragma: no cover
            raise HTTPException(status_code=503, detail="database unavailable") from exc
        return {"status": "ready"}

    # Escaneo
    # =======

    @app.post("/v1/scan", status_code=202)
    def start_scan(
        body: Optional[ScanRequest] = None,
        tenant: str = Query(DEFAULT_TENANT),
    ) -> Dict[str, Any]:
        """Escaneo síncrono; 429 si el tenant ya tiene uno en curso."""
        topics = container.scanner.scan_sources(tenant, scan_type=(body or ScanRequest()).scan_type)
        return {"ok": True, "count": len(topics), "topics": [topic.to_dict() for topic in topics]}

    @app.get("/v1/scan/status")
    def scan_status(tenant: str = Query(DEFAULT_TENANT)) -> Dict[str, Any]:
        return container.scanner.get_scan_status(tenant)

    # Temas
    # =====

    @app.get("/v1/topics")
    def list_topics(
        status: Optional[str] = Query("pending"),
        limit: int = Query(50, ge=1, le=200),
        tenant: str = Query(DEFAULT_TENANT),
        manager: DatabaseManager = Depends(get_db),
    ) -> Dict[str, Any]:
        topics = manager.get_topics(status=status or None, tenant_id=tenant, limit=limit)
        return {"data": [topic.to_dict() for topic in topics], "count": len(topics)}

    @app.get("/v1/topics/{topic_id}")
    def get_topic(topic_id: int, manager: DatabaseManager = Depends(get_db)) -> Dict[str, Any]:
        topic = manager.get_topic(topic_id)
        if not topic:
            raise _not_found("topic", topic_id)
        return topic.to_dict()

    @app.delete("/v1/topics/{topic_id}")
    def archive_topic(topic_id: int, manager: DatabaseManager = Depends(get_db)) -> Dict[str, Any]:
        if not manager.archive_topic(topic_id):
            raise _not_found("topic", topic_id)
        return {"ok": True, "id": topic_id, "status": "archived"}

    @app.delete("/v1/topics")
    def clear_pending_topics(
        tenant: str = Query(DEFAULT_TENANT), manager: DatabaseManager = Depends(get_db)
    ) -> Dict[str, Any]:
        return {"ok": True, "archived": manager.clear_pending_topics(tenant)}

    # Generación
    # ==========

    @app.post("/v1/generate")
    def generate(body: GenerateRequest, tenant: str = Query(DEFAULT_TENANT)) -> Dict[str, Any]:
        drafts = container.generator.generate_drafts(
            body.topic_ids, user=body.user, mode=body.mode, format_style=body.format_style, tenant_id=tenant
        )
        return {
            "ok": True,
            "requested": len(body.topic_ids),
            "generated": len(drafts),
            "drafts": [draft.to_dict() for draft in drafts],
        }

    # Borradores
    # ==========

    @app.get("/v1/drafts")
    def list_drafts(
        review_status: Optional[str] = Query(None),
        publish_status: Optional[str] = Query(None),
        category: Optional[str] = Query(None),
        limit: int = Query(50, ge=1, le=200),
        tenant: str = Query(DEFAULT_TENANT),
        manager: DatabaseManager = Depends(get_db),
    ) -> Dict[str, Any]:
        drafts = manager.list_drafts(
            tenant_id=tenant,
            review_status=review_status,
            publish_status=publish_status,
            category=category,
            limit=limit,
        )
        return {"data": [draft.to_dict() for draft in drafts], "count": len(drafts)}

    @app.get("/v1/drafts/{draft_id}")
    def get_draft(draft_id: int, manager: DatabaseManager = Depends(get_db)) -> Dict[str, Any]:
        draft = manager.get_draft(draft_id)
        if not draft:
            raise _not_found("draft", draft_id)
        return draft.to_dict()

    @app.patch("/v1/drafts/{draft_id}")
    def update_draft(
        draft_id: int, body: DraftUpdateRequest, manager: DatabaseManager = Depends(get_db)
    ) -> Dict[str, Any]:
        changes = body.model_dump(exclude_unset=True)
        if not changes:
            raise HTTPException(status_code=422, detail="no fields to update")
        draft = manager.update_draft(draft_id, **changes)
        if not draft:
            raise _not_found("draft", draft_id)
        return draft.to_dict()

    @app.delete("/v1/drafts/{draft_id}")
    def delete_draft(draft_id: int, manager: DatabaseManager = Depends(get_db)) -> Dict[str, Any]:
        if not manager.delete_draft(draft_id):
            raise _not_found("draft", draft_id)
        return {"ok": True, "id": draft_id}

    # Revisión
    # ========

    @app.put("/v1/drafts/{draft_id}/review")
    def review_draft(draft_id: int, body: ReviewRequest) -> Dict[str, Any]:
        draft = container.review.review_draft(draft_id, body.action, notes=body.notes, user=body.user)
        return draft.to_dict()

    @app.post("/v1/drafts/{draft_id}/revision")
    def request_revision(
        draft_id: int, body: Optional[RevisionRequest] = None
    ) -> Dict[str, Any]:
        body = body or RevisionRequest()
        return container.review.generate_revision(draft_id, notes=body.notes, model=body.model, user=body.user)

    @app.get("/v1/drafts/{draft_id}/revision")
    def revision_status(draft_id: int) -> Dict[str, Any]:
        result = container.review.get_revision_status(draft_id)
        if result["status"] == "not_found":
            raise _not_found("draft", draft_id)
        return result

    @app.post("/v1/drafts/{draft_id}/apply-revision")
    def apply_revision(draft_id: int, user: Optional[str] = Query(None)) -> Dict[str, Any]:
        return container.review.apply_revision(draft_id, user=user).to_dict()

    # Publicación
    # ===========

    @app.post("/v1/drafts/{draft_id}/schedule")
    def schedule_draft(draft_id: int, body: ScheduleRequest) -> Dict[str, Any]:
        return container.publisher.schedule_draft(draft_id, body.scheduled_at).to_dict()

    @app.post("/v1/drafts/{draft_id}/publish")
    def publish_draft(
        draft_id: int, body: Optional[PublishRequest] = None
    ) -> Dict[str, Any]:
        body = body or PublishRequest()
        result = container.publisher.publish_approved_draft(
            draft_id,
            schedule_at=body.schedule_at,
            category_override=body.categoria,
            tags_override=body.etiquetas,
            author_name=body.autor,
        )
        return {
            "ok": True,
            "alreadyPublished": result.already_published,
            "news": result.news.to_dict(),
            "draft": result.draft.to_dict(),
        }

    @app.post("/v1/auto-schedule")
    def auto_schedule(tenant: str = Query(DEFAULT_TENANT)) -> Dict[str, Any]:
        scheduled = container.publisher.auto_schedule_drafts(tenant)
        return {"ok": True, "count": len(scheduled), "scheduled": scheduled}

    # Configuración y estadísticas
    # ============================

    @app.get("/v1/config")
    def get_config(
        tenant: str = Query(DEFAULT_TENANT), manager: DatabaseManager = Depends(get_db)
    ) -> Dict[str, Any]:
        return manager.get_ai_config(tenant).to_dict()

    @app.patch("/v1/config")
    def update_config(
        body: ConfigUpdateRequest,
        tenant: str = Query(DEFAULT_TENANT),
        manager: DatabaseManager = Depends(get_db),
    ) -> Dict[str, Any]:
        changes = body.model_dump(exclude_unset=True)
        if not changes:
            raise HTTPException(status_code=422, detail="no fields to update")
        try:
            config = manager.update_ai_config(changes, tenant)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        logger.info(f"⚙️ Configuración actualizada para {tenant}: {sorted(changes)}")
        return config.to_dict()

    @app.get("/v1/config/suggest-frequency")
    def suggest_frequency(tenant: str = Query(DEFAULT_TENANT)) -> Dict[str, Any]:
        return container.stats.suggest_frequency(tenant)

    @app.get("/v1/stats")
    def usage_stats(
        date_from: Optional[str] = Query(None, alias="from"),
        date_to: Optional[str] = Query(None, alias="to"),
        tenant: str = Query(DEFAULT_TENANT),
    ) -> Dict[str, Any]:
        start = _parse_datetime(date_from, "from")
        end = _parse_datetime(date_to, "to")
        if start and end and end < start:
            raise HTTPException(status_code=422, detail="to must be greater than or equal to from")
        return container.stats.get_usage_stats(start, end, tenant)

    # Facebook
    # ========

    @app.get("/v1/facebook/scheduler-info")
    def facebook_scheduler_info(tenant: str = Query(DEFAULT_TENANT)) -> Dict[str, Any]:
        return container.facebook.get_schedule_summary(tenant)

    @app.post("/v1/facebook/run")
    def facebook_run(tenant: str = Query(DEFAULT_TENANT)) -> Dict[str, Any]:
        return container.facebook.run(tenant)

    return app


__all__ = ["ServiceContainer", "create_app"]
