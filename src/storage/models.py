# src/storage/models.py
# Modelos de datos del Redactor IA
# ================================

"""
Estructura de datos del pipeline editorial: temas detectados por el
escáner, borradores generados por el LLM, la configuración por tenant,
los registros de escaneo y costo, y las noticias publicadas.

Todas las fechas se guardan en UTC. Los campos con nombres en español
conservan el vocabulario de la redacción (titulo, bajada, etiquetas).
"""

import secrets
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship

# Base para todos los modelos
Base = declarative_base()

DEFAULT_TENANT = "levantatecuba"

TOPIC_STATUSES = ("pending", "selected", "generated", "archived")
CONFIDENCE_LEVELS = ("Baja", "Media", "Alta")
REVIEW_STATUSES = (
    "pending",
    "approved",
    "changes_requested",
    "changes_in_progress",
    "changes_completed",
    "rejected",
)
PUBLISH_STATUSES = ("pendiente", "programado", "publicado")
DRAFT_STATUSES = ("draft", "published", "archived", "rejected")
DRAFT_MODES = ("factual", "opinion")
SCAN_FREQUENCIES = ("manual", "2h", "3h", "4h", "6h", "12h", "24h")
SCAN_TYPES = ("manual", "scheduled", "auto", "cuba_estricto")
SCAN_LOG_STATUSES = ("success", "partial", "failed")
COST_TYPES = ("llm", "image", "scan", "other")
FACEBOOK_STATUSES = ("not_shared", "sharing", "published", "error")

# Allowlist por defecto de fuentes confiables sobre Cuba
DEFAULT_TRUSTED_SOURCES = [
    "bbc.com",
    "bbc.co.uk",
    "reuters.com",
    "apnews.com",
    "afp.com",
    "nytimes.com",
    "washingtonpost.com",
    "theguardian.com",
    "elpais.com",
    "cubanet.org",
    "14ymedio.com",
    "diariodecuba.com",
    "cibercuba.com",
    "martinoticias.com",
    "adncuba.com",
    "ddcuba.com",
    "oncubamagazine.com",
    "cubanosporelmundo.com",
    "efe.com",
    "dpa.de",
    "france24.com",
]

DEFAULT_CUBA_KEYWORDS = [
    "Cuba",
    "cubano",
    "La Habana",
    "Díaz-Canel",
    "economía cubana",
    "política cubana",
    "disidencia",
    "derechos humanos Cuba",
    "bloqueo",
    "reforma económica",
]

DEFAULT_IMPACT_WEIGHTS = {
    "recencia": 0.20,
    "consenso": 0.15,
    "autoridad": 0.15,
    "tendencia": 0.15,
    "relevanciaCuba": 0.20,
    "novedad": 0.15,
}

DEFAULT_FACEBOOK_SCHEDULER = {
    "enabled": False,
    "intervalMinutes": 30,
    "startHour": 9,
    "endHour": 23,
    "maxPerDay": 0,
    "lastPublishedAt": None,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_topic_key() -> str:
    """Identificador legible de tema: ``topic_<ms>_<hex>``."""
    return f"topic_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class AiTopic(Base):
    """
    Tema detectado por el escáner: agrupa varias notas sobre el mismo hecho
    y lleva el score de impacto con el que se priorizó.
    """

    __tablename__ = "ai_topics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), nullable=False, default=DEFAULT_TENANT)
    id_tema = Column(String(64), unique=True, nullable=False, default=generate_topic_key)

    titulo_sugerido = Column(String(500), nullable=False)
    resumen_breve = Column(String(500))
    impacto = Column(Integer, nullable=False, default=0)
    confianza = Column(String(10), nullable=False, default="Baja")
    # [{medio, titulo, url, fecha}]
    fuentes_top = Column(JSON, default=list)
    categoria_sugerida = Column(String(50), default="General")
    image_url = Column(String(1000))

    status = Column(String(20), nullable=False, default="pending")
    # recencia, consenso, autoridad, tendencia, relevanciaCuba, novedad,
    # freshness y final_score del escaneo
    topic_metadata = Column("metadata", JSON, default=dict)

    detected_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    selected_at = Column(DateTime(timezone=True))
    archived_at = Column(DateTime(timezone=True))

    drafts = relationship("AiDraft", back_populates="topic")

    __table_args__ = (
        Index("idx_topics_tenant_status_impact", "tenant_id", "status", "impacto"),
        Index("idx_topics_detected", "detected_at"),
    )

    def __repr__(self):
        return f"<AiTopic(id={self.id}, titulo='{(self.titulo_sugerido or '')[:50]}', status='{self.status}')>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "id_tema": self.id_tema,
            "titulo_sugerido": self.titulo_sugerido,
            "resumen_breve": self.resumen_breve,
            "impacto": self.impacto,
            "confianza": self.confianza,
            "fuentes_top": self.fuentes_top or [],
            "categoria_sugerida": self.categoria_sugerida,
            "image_url": self.image_url,
            "status": self.status,
            "metadata": self.topic_metadata or {},
            "detected_at": _iso(self.detected_at),
            "selected_at": _iso(self.selected_at),
            "archived_at": _iso(self.archived_at),
        }


class AiDraft(Base):
    """
    Borrador generado por el LLM a partir de un tema.

    Recorre dos ejes de estado independientes: la revisión editorial
    (``review_status``) y la publicación (``publish_status``).
    """

    __tablename__ = "ai_drafts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), nullable=False, default=DEFAULT_TENANT)
    topic_id = Column(Integer, ForeignKey("ai_topics.id"), index=True)

    # Contenido
    # =========
    titulo = Column(String(500), nullable=False)
    bajada = Column(Text)
    categoria = Column(String(50), default="General")
    etiquetas = Column(JSON, default=list)
    contenido_markdown = Column(Text)
    contenido_html = Column(Text)
    fuentes = Column(JSON, default=list)
    verifications = Column(JSON, default=list)
    prompts_imagen = Column(JSON, default=list)

    # Imagen de portada
    # =================
    cover_image_url = Column(String(1000))
    image_kind = Column(String(20))
    image_provider = Column(String(40))
    image_status = Column(String(20), default="none")

    # Generación
    # ==========
    generation_type = Column(String(10), default="auto")
    generated_by = Column(String(100))
    mode = Column(String(10), default="factual")
    status = Column(String(20), nullable=False, default="draft")
    ai_metadata = Column(JSON, default=dict)

    # Revisión editorial
    # ==================
    review_status = Column(String(30), nullable=False, default="pending")
    review_notes = Column(Text)
    reviewed_by = Column(String(100))
    reviewed_at = Column(DateTime(timezone=True))
    approved_at = Column(DateTime(timezone=True))
    # Estado de la propuesta de revisión del LLM
    review = Column(JSON)

    # Publicación
    # ===========
    publish_status = Column(String(20), nullable=False, default="pendiente")
    scheduled_at = Column(DateTime(timezone=True))
    published_at = Column(DateTime(timezone=True))
    published_as = Column(Integer, ForeignKey("news_posts.id"))

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    topic = relationship("AiTopic", back_populates="drafts")

    __table_args__ = (
        Index("idx_drafts_tenant_review", "tenant_id", "review_status", "created_at"),
        Index("idx_drafts_publish_schedule", "publish_status", "scheduled_at"),
    )

    def __repr__(self):
        return f"<AiDraft(id={self.id}, titulo='{(self.titulo or '')[:50]}', review='{self.review_status}')>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "topic_id": self.topic_id,
            "titulo": self.titulo,
            "bajada": self.bajada,
            "categoria": self.categoria,
            "etiquetas": self.etiquetas or [],
            "contenido_markdown": self.contenido_markdown,
            "contenido_html": self.contenido_html,
            "fuentes": self.fuentes or [],
            "verifications": self.verifications or [],
            "prompts_imagen": self.prompts_imagen or [],
            "cover_image_url": self.cover_image_url,
            "image_kind": self.image_kind,
            "image_provider": self.image_provider,
            "image_status": self.image_status,
            "generation_type": self.generation_type,
            "generated_by": self.generated_by,
            "mode": self.mode,
            "status": self.status,
            "ai_metadata": self.ai_metadata or {},
            "review_status": self.review_status,
            "review_notes": self.review_notes,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": _iso(self.reviewed_at),
            "approved_at": _iso(self.approved_at),
            "review": self.review,
            "publish_status": self.publish_status,
            "scheduled_at": _iso(self.scheduled_at),
            "published_at": _iso(self.published_at),
            "published_as": self.published_as,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class AiConfig(Base):
    """Configuración del Redactor IA, una fila por tenant."""

    __tablename__ = "ai_config"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), unique=True, nullable=False, default=DEFAULT_TENANT)

    # Escaneo
    # =======
    scan_frequency = Column(String(10), nullable=False, default="3h")
    auto_generate_images = Column(Boolean, default=True)
    max_topics_per_scan = Column(Integer, default=8)
    min_sources_for_high_confidence = Column(Integer, default=3)
    rss_whitelist = Column(JSON, default=list)
    trusted_sources = Column(JSON, default=lambda: list(DEFAULT_TRUSTED_SOURCES))
    enforce_source_allowlist = Column(Boolean, default=False)
    newsapi_enabled = Column(Boolean, default=True)
    cuba_keywords = Column(JSON, default=lambda: list(DEFAULT_CUBA_KEYWORDS))
    strict_cuba = Column(Boolean, default=False)
    freshness_window_hours = Column(Integer, default=48)
    per_source_cap = Column(Integer, default=5)

    # Generación
    # ==========
    ai_model = Column(String(60), default="gpt-4o-mini")
    image_provider = Column(String(40), default="dall-e-3")
    impact_weights = Column(JSON, default=lambda: dict(DEFAULT_IMPACT_WEIGHTS))
    statistics = Column(JSON, default=dict)

    # Control de ejecución
    # ====================
    last_scan_at = Column(DateTime(timezone=True))
    next_scan_at = Column(DateTime(timezone=True))
    is_scanning = Column(Boolean, default=False)

    # Programación automática de borradores
    # =====================================
    auto_schedule_enabled = Column(Boolean, default=False)
    auto_schedule_interval = Column(Integer, default=10)
    auto_schedule_start_hour = Column(Integer, default=7)
    auto_schedule_end_hour = Column(Integer, default=23)

    facebook_scheduler = Column(JSON, default=lambda: dict(DEFAULT_FACEBOOK_SCHEDULER))

    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<AiConfig(tenant='{self.tenant_id}', frequency='{self.scan_frequency}')>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "scan_frequency": self.scan_frequency,
            "auto_generate_images": self.auto_generate_images,
            "max_topics_per_scan": self.max_topics_per_scan,
            "min_sources_for_high_confidence": self.min_sources_for_high_confidence,
            "rss_whitelist": self.rss_whitelist or [],
            "trusted_sources": self.trusted_sources or [],
            "enforce_source_allowlist": self.enforce_source_allowlist,
            "newsapi_enabled": self.newsapi_enabled,
            "cuba_keywords": self.cuba_keywords or [],
            "strict_cuba": self.strict_cuba,
            "freshness_window_hours": self.freshness_window_hours,
            "per_source_cap": self.per_source_cap,
            "ai_model": self.ai_model,
            "image_provider": self.image_provider,
            "impact_weights": self.impact_weights or dict(DEFAULT_IMPACT_WEIGHTS),
            "statistics": self.statistics or {},
            "last_scan_at": _iso(self.last_scan_at),
            "next_scan_at": _iso(self.next_scan_at),
            "is_scanning": bool(self.is_scanning),
            "auto_schedule_enabled": self.auto_schedule_enabled,
            "auto_schedule_interval": self.auto_schedule_interval,
            "auto_schedule_start_hour": self.auto_schedule_start_hour,
            "auto_schedule_end_hour": self.auto_schedule_end_hour,
            "facebook_scheduler": {
                **DEFAULT_FACEBOOK_SCHEDULER,
                **(self.facebook_scheduler or {}),
            },
        }


class ScanLog(Base):
    """Registro de cada corrida del escáner."""

    __tablename__ = "scan_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), nullable=False, default=DEFAULT_TENANT)
    topics_found = Column(Integer, default=0)
    scan_type = Column(String(20), default="manual")
    # Conteos por origen: {"newsapi": 12, "rss": 30, ...}
    sources = Column(JSON, default=dict)
    duration_ms = Column(Integer, default=0)
    status = Column(String(10), nullable=False, default="success")
    error = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "topics_found": self.topics_found,
            "scan_type": self.scan_type,
            "sources": self.sources or {},
            "duration_ms": self.duration_ms,
            "status": self.status,
            "error": self.error,
            "created_at": _iso(self.created_at),
        }


class CostLog(Base):
    """Costo de una llamada a LLM o proveedor de imágenes."""

    __tablename__ = "cost_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), nullable=False, default=DEFAULT_TENANT)
    type = Column(String(10), nullable=False, default="other")
    cost_usd = Column(Float, nullable=False, default=0.0)
    draft_id = Column(Integer)
    topic_id = Column(Integer)
    # {model, provider, tokensUsed, duration, success}
    cost_metadata = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<CostLog(type='{self.type}', cost={self.cost_usd})>"


class NewsPost(Base):
    """
    Noticia publicada en el sitio.

    Lleva además el estado de su difusión en la página de Facebook.
    """

    __tablename__ = "news_posts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), nullable=False, default=DEFAULT_TENANT)
    titulo = Column(String(500), nullable=False)
    bajada = Column(Text)
    contenido = Column(Text)
    categoria = Column(String(50), default="General")
    etiquetas = Column(JSON, default=list)
    imagen = Column(String(1000), default="")
    image_provider = Column(String(40))
    autor = Column(String(100))
    status = Column(String(20), nullable=False, default="published")
    published_at = Column(DateTime(timezone=True), index=True)
    mode = Column(String(10), default="factual")
    is_evergreen = Column(Boolean, default=False)
    ai_metadata = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    # Difusión en Facebook
    # ====================
    facebook_status = Column(String(20), nullable=False, default="not_shared")
    facebook_post_id = Column(String(100))
    facebook_permalink_url = Column(String(500))
    published_to_facebook = Column(Boolean, default=False)
    facebook_published_at = Column(DateTime(timezone=True))
    facebook_sharing_since = Column(DateTime(timezone=True))
    facebook_attempt_count = Column(Integer, default=0)
    facebook_last_error = Column(Text)

    __table_args__ = (
        Index("idx_news_facebook_candidates", "status", "facebook_status", "published_at"),
    )

    def __repr__(self):
        return f"<NewsPost(id={self.id}, titulo='{(self.titulo or '')[:50]}')>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "titulo": self.titulo,
            "bajada": self.bajada,
            "contenido": self.contenido,
            "categoria": self.categoria,
            "etiquetas": self.etiquetas or [],
            "imagen": self.imagen,
            "image_provider": self.image_provider,
            "autor": self.autor,
            "status": self.status,
            "published_at": _iso(self.published_at),
            "mode": self.mode,
            "is_evergreen": bool(self.is_evergreen),
            "facebook_status": self.facebook_status,
            "facebook_post_id": self.facebook_post_id,
            "facebook_permalink_url": self.facebook_permalink_url,
            "published_to_facebook": bool(self.published_to_facebook),
            "facebook_published_at": _iso(self.facebook_published_at),
            "facebook_attempt_count": self.facebook_attempt_count or 0,
            "facebook_last_error": self.facebook_last_error,
            "created_at": _iso(self.created_at),
        }


def get_model_info():
    """
    Devuelve información sobre todos los modelos definidos.
    Útil para debugging y documentación.
    """
    models = {
        "AiTopic": AiTopic,
        "AiDraft": AiDraft,
        "AiConfig": AiConfig,
        "ScanLog": ScanLog,
        "CostLog": CostLog,
        "NewsPost": NewsPost,
    }

    info = {}
    for name, model in models.items():
        info[name] = {
            "table_name": model.__tablename__,
            "columns": [col.name for col in model.__table__.columns],
            "indexes": [idx.name for idx in model.__table__.indexes],
        }

    return info
