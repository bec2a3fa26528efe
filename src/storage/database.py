# src/storage/database.py
# Manejador de base de datos del Redactor IA
# ==========================================

"""
Capa de persistencia del pipeline editorial.

Todas las consultas pasan por ``DatabaseManager``; el resto del sistema no
importa SQLAlchemy directamente. Los objetos devueltos quedan desligados
de la sesión (``expire_on_commit=False``) y se pueden leer después de
cerrarla, pero sus relaciones no se cargan de forma perezosa.
"""

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy import create_engine, desc, func, inspect, or_, text, update
from sqlalchemy.orm import Session, sessionmaker

from config.settings import DATABASE_CONFIG, DEFAULT_TENANT
from redactor_ia.config_schema import ImpactWeightsConfig
from src.contracts import DraftPayloadModel, TopicCandidateModel

from .models import (
    DEFAULT_FACEBOOK_SCHEDULER,
    DRAFT_STATUSES,
    PUBLISH_STATUSES,
    REVIEW_STATUSES,
    SCAN_FREQUENCIES,
    TOPIC_STATUSES,
    AiConfig,
    AiDraft,
    AiTopic,
    Base,
    CostLog,
    NewsPost,
    ScanLog,
)

import logging

# Configurar logging para este módulo
logger = logging.getLogger(__name__)

IMAGE_PROVIDERS = ("dall-e-3", "dall-e-2", "hailuo", "stable-diffusion", "midjourney")

# Rangos permitidos para los campos numéricos de AiConfig
AI_CONFIG_RANGES: Dict[str, Tuple[int, int]] = {
    "max_topics_per_scan": (1, 20),
    "min_sources_for_high_confidence": (1, 10),
    "freshness_window_hours": (12, 168),
    "per_source_cap": (1, 10),
    "auto_schedule_interval": (5, 120),
    "auto_schedule_start_hour": (0, 23),
    "auto_schedule_end_hour": (0, 23),
}

FACEBOOK_SCHEDULER_RANGES: Dict[str, Tuple[int, int]] = {
    "intervalMinutes": (10, 120),
    "startHour": (0, 23),
    "endHour": (0, 23),
    "maxPerDay": (0, 50),
}

AI_CONFIG_BOOLEANS = (
    "auto_generate_images",
    "enforce_source_allowlist",
    "newsapi_enabled",
    "strict_cuba",
    "auto_schedule_enabled",
)

AI_CONFIG_LISTS = ("rss_whitelist", "trusted_sources", "cuba_keywords")

DRAFT_EDITABLE_FIELDS = {
    "titulo",
    "bajada",
    "categoria",
    "etiquetas",
    "contenido_markdown",
    "contenido_html",
    "fuentes",
    "verifications",
    "prompts_imagen",
    "cover_image_url",
    "image_kind",
    "image_provider",
    "image_status",
    "status",
    "review_status",
    "review_notes",
    "reviewed_by",
    "reviewed_at",
    "approved_at",
    "review",
    "publish_status",
    "scheduled_at",
    "published_at",
    "published_as",
    "ai_metadata",
}

# Categorías con ventana propia en la cola de Facebook
FACEBOOK_PRIORITY_CATEGORIES = ("Cuba", "Tendencia", "Tecnología")


def _clamp(value: Any, low: int, high: int, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = default
    return max(low, min(high, number))


class DatabaseManager:
    """
    Punto único de acceso a la base de datos.

    Agrupa las operaciones por entidad: temas, borradores, configuración,
    registros de escaneo y costo, noticias y mantenimiento.
    """

    def __init__(self, database_config: Dict[str, Any] = None):
        """
        Args:
            database_config: Configuración de base de datos. Si no se proporciona,
                           usa DATABASE_CONFIG de settings.py
        """
        self.config = database_config or DATABASE_CONFIG
        self.engine = None
        self.SessionLocal = None
        self._setup_database()

    def _setup_database(self):
        """Crea el engine, la fábrica de sesiones y las tablas."""
        try:
            if self.config["type"] == "sqlite":
                db_path = self.config["path"]
                db_path.parent.mkdir(parents=True, exist_ok=True)
                database_url = f"sqlite:///{db_path}"

                self.engine = create_engine(
                    database_url,
                    echo=False,
                    connect_args={
                        "check_same_thread": False,  # el scheduler usa hilos
                        "timeout": 20,
                    },
                    pool_pre_ping=True,
                )

            elif self.config["type"] == "postgresql":
                database_url = (
                    f"postgresql://{self.config['user']}:{self.config['password']}"
                    f"@{self.config['host']}:{self.config['port']}/{self.config['name']}"
                )
                self.engine = create_engine(
                    database_url,
                    echo=False,
                    pool_size=self.config.get("pool_size", 5),
                    max_overflow=self.config.get("max_overflow", 5),
                    pool_timeout=self.config.get("pool_timeout", 30),
                    pool_recycle=self.config.get("pool_recycle", 1800),
                    pool_pre_ping=True,
                )

            else:
                raise ValueError(
                    f"Tipo de base de datos no soportado: {self.config['type']}"
                )

            self.SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                bind=self.engine,
                expire_on_commit=False,
            )

            Base.metadata.create_all(self.engine)
            self._run_schema_migrations()

            logger.info(
                f"✅ Base de datos configurada exitosamente: {self.config['type']}"
            )

        except Exception as e:
            logger.error(f"❌ Error configurando base de datos: {e}")
            raise

    def _run_schema_migrations(self) -> None:
        """Agrega columnas nuevas a tablas creadas por versiones anteriores."""

        try:
            inspector = inspect(self.engine)
            tables = inspector.get_table_names()
        except Exception as exc:  # pragma: no cover - solo en errores del driver
            logger.error("No se pudo inspeccionar la base de datos: %s", exc)
            return

        db_type = self.config.get("type", "sqlite")
        timestamp_type = (
            "TIMESTAMP WITH TIME ZONE" if db_type == "postgresql" else "TIMESTAMP"
        )
        boolean_type = "BOOLEAN" if db_type != "sqlite" else "INTEGER"
        false_default = "DEFAULT 0" if db_type == "sqlite" else "DEFAULT FALSE"

        expected: Dict[str, List[Tuple[str, str]]] = {
            "news_posts": [
                ("facebook_sharing_since", timestamp_type),
                ("facebook_attempt_count", "INTEGER DEFAULT 0"),
                ("facebook_last_error", "TEXT"),
                ("is_evergreen", f"{boolean_type} {false_default}"),
            ],
            "ai_drafts": [
                ("review", "JSON" if db_type == "postgresql" else "TEXT"),
                ("image_status", "VARCHAR(20)"),
            ],
            "ai_config": [
                ("facebook_scheduler", "JSON" if db_type == "postgresql" else "TEXT"),
            ],
        }

        migrations: List[Tuple[str, str, str]] = []
        for table, columns in expected.items():
            if table not in tables:
                continue
            existing_columns = {col["name"] for col in inspector.get_columns(table)}
            for column_name, column_type in columns:
                if column_name not in existing_columns:
                    migrations.append(
                        (
                            f"ALTER TABLE {table} ADD COLUMN {column_name} {column_type}",
                            table,
                            column_name,
                        )
                    )

        if not migrations:
            return

        with self.engine.begin() as connection:
            for statement, table, column_name in migrations:
                connection.execute(text(statement))
                logger.info(
                    "🛠️  Columna '%s' agregada a la tabla %s mediante migración automática",
                    column_name,
                    table,
                )

    @contextmanager
    def get_session(self):
        """
        Context manager de sesión: hace commit al salir, rollback si hay
        excepción y siempre cierra.

        Uso:
            with db_manager.get_session() as session:
                topic = session.query(AiTopic).first()
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Error en operación de base de datos: {e}")
            raise
        finally:
            session.close()

    @staticmethod
    def _ensure_timezone(dt: Optional[datetime]) -> Optional[datetime]:
        if dt is None:
            return None
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    # =====================================
    # OPERACIONES CON TEMAS
    # =====================================

    def save_topics(
        self,
        topics: Iterable[TopicCandidateModel | Dict[str, Any]],
        tenant_id: str = DEFAULT_TENANT,
    ) -> List[AiTopic]:
        """
        Guarda los temas seleccionados por el escáner con estado ``pending``.

        Raises:
            ValueError: si algún tema no cumple el contrato.
        """
        models: List[TopicCandidateModel] = []
        for topic in topics:
            if isinstance(topic, TopicCandidateModel):
                models.append(topic)
                continue
            try:
                models.append(TopicCandidateModel.model_validate(topic))
            except ValidationError as exc:
                raise ValueError(f"Invalid topic payload: {exc}") from exc

        saved: List[AiTopic] = []
        with self.get_session() as session:
            for model in models:
                payload = model.model_dump_for_storage()
                topic = AiTopic(
                    tenant_id=tenant_id,
                    titulo_sugerido=payload["titulo_sugerido"],
                    resumen_breve=payload["resumen_breve"],
                    impacto=payload["impacto"],
                    confianza=payload["confianza"],
                    fuentes_top=payload["fuentes_top"],
                    categoria_sugerida=payload["categoria_sugerida"],
                    image_url=payload.get("image_url"),
                    status="pending",
                    topic_metadata=payload.get("metadata", {}),
                )
                session.add(topic)
                saved.append(topic)
            session.flush()

        logger.info(f"✅ {len(saved)} temas guardados para {tenant_id}")
        return saved

    def get_topics(
        self,
        status: Optional[str] = "pending",
        tenant_id: str = DEFAULT_TENANT,
        limit: int = 50,
    ) -> List[AiTopic]:
        """Temas de un tenant ordenados por impacto (status None = todos)."""
        with self.get_session() as session:
            query = session.query(AiTopic).filter(AiTopic.tenant_id == tenant_id)
            if status:
                query = query.filter(AiTopic.status == status)
            return (
                query.order_by(desc(AiTopic.impacto), desc(AiTopic.detected_at))
                .limit(limit)
                .all()
            )

    def get_topic(self, topic_id: int) -> Optional[AiTopic]:
        with self.get_session() as session:
            return session.query(AiTopic).filter_by(id=topic_id).first()

    def get_pending_topic_titles(self, tenant_id: str = DEFAULT_TENANT) -> List[str]:
        with self.get_session() as session:
            rows = (
                session.query(AiTopic.titulo_sugerido)
                .filter(AiTopic.tenant_id == tenant_id)
                .filter(AiTopic.status == "pending")
                .all()
            )
            return [row[0] for row in rows if row[0]]

    def update_topic_status(self, topic_id: int, status: str) -> bool:
        """Cambia el estado de un tema y sella la fecha correspondiente."""
        if status not in TOPIC_STATUSES:
            raise ValueError(f"Estado de tema inválido: {status}")

        with self.get_session() as session:
            topic = session.query(AiTopic).filter_by(id=topic_id).first()
            if not topic:
                logger.warning(f"Tema no encontrado: {topic_id}")
                return False
            topic.status = status
            now = datetime.now(timezone.utc)
            if status == "selected":
                topic.selected_at = now
            elif status == "archived":
                topic.archived_at = now
            return True

    def archive_topic(self, topic_id: int) -> bool:
        return self.update_topic_status(topic_id, "archived")

    def clear_pending_topics(self, tenant_id: str = DEFAULT_TENANT) -> int:
        """Archiva todos los temas pendientes del tenant y devuelve cuántos."""
        now = datetime.now(timezone.utc)
        with self.get_session() as session:
            archived = (
                session.query(AiTopic)
                .filter(AiTopic.tenant_id == tenant_id)
                .filter(AiTopic.status == "pending")
                .update(
                    {"status": "archived", "archived_at": now},
                    synchronize_session=False,
                )
            )
        logger.info(f"🧹 {archived} temas pendientes archivados para {tenant_id}")
        return archived

    # =====================================
    # OPERACIONES CON BORRADORES
    # =====================================

    def save_draft(self, draft_data: DraftPayloadModel | Dict[str, Any]) -> AiDraft:
        """
        Guarda un borrador nuevo en estado draft / pending / pendiente.

        Raises:
            ValueError: si el payload no cumple el contrato.
        """
        if isinstance(draft_data, DraftPayloadModel):
            model = draft_data
        else:
            try:
                model = DraftPayloadModel.model_validate(draft_data)
            except ValidationError as exc:
                raise ValueError(f"Invalid draft payload: {exc}") from exc

        payload = model.model_dump_for_storage()
        tenant_id = payload.pop("tenant_id", None) or DEFAULT_TENANT

        with self.get_session() as session:
            draft = AiDraft(
                tenant_id=tenant_id,
                status="draft",
                review_status="pending",
                publish_status="pendiente",
                **payload,
            )
            session.add(draft)
            session.flush()
            logger.info(f"✅ Borrador guardado: {draft.titulo[:50]}...")
            return draft

    def get_draft(self, draft_id: int) -> Optional[AiDraft]:
        with self.get_session() as session:
            return session.query(AiDraft).filter_by(id=draft_id).first()

    def list_drafts(
        self,
        tenant_id: str = DEFAULT_TENANT,
        review_status: Optional[str] = None,
        publish_status: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> List[AiDraft]:
        """Borradores más recientes primero, con filtros opcionales."""
        with self.get_session() as session:
            query = session.query(AiDraft).filter(AiDraft.tenant_id == tenant_id)
            if review_status:
                query = query.filter(AiDraft.review_status == review_status)
            if publish_status:
                query = query.filter(AiDraft.publish_status == publish_status)
            if category:
                query = query.filter(AiDraft.categoria == category)
            if status:
                query = query.filter(AiDraft.status == status)
            return query.order_by(desc(AiDraft.created_at)).limit(limit).all()

    def update_draft(self, draft_id: int, **fields: Any) -> Optional[AiDraft]:
        """
        Actualiza campos editables de un borrador.

        Returns:
            El borrador actualizado o None si no existe.
        """
        unknown = set(fields) - DRAFT_EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Campos no editables: {sorted(unknown)}")
        if "review_status" in fields and fields["review_status"] not in REVIEW_STATUSES:
            raise ValueError(f"review_status inválido: {fields['review_status']}")
        if "publish_status" in fields and fields["publish_status"] not in PUBLISH_STATUSES:
            raise ValueError(f"publish_status inválido: {fields['publish_status']}")
        if "status" in fields and fields["status"] not in DRAFT_STATUSES:
            raise ValueError(f"status inválido: {fields['status']}")

        with self.get_session() as session:
            draft = session.query(AiDraft).filter_by(id=draft_id).first()
            if not draft:
                return None
            for name, value in fields.items():
                setattr(draft, name, value)
            draft.updated_at = datetime.now(timezone.utc)
            return draft

    def delete_draft(self, draft_id: int) -> bool:
        with self.get_session() as session:
            deleted = session.query(AiDraft).filter_by(id=draft_id).delete()
        if deleted:
            logger.info(f"🗑️ Borrador {draft_id} eliminado")
        return bool(deleted)

    def get_due_scheduled_drafts(
        self, now: Optional[datetime] = None, limit: int = 10
    ) -> List[AiDraft]:
        """Borradores programados cuya hora ya llegó y que no se publicaron."""
        now = self._ensure_timezone(now) or datetime.now(timezone.utc)
        with self.get_session() as session:
            return (
                session.query(AiDraft)
                .filter(AiDraft.scheduled_at.isnot(None))
                .filter(AiDraft.scheduled_at <= now)
                .filter(AiDraft.publish_status == "programado")
                .filter(AiDraft.published_as.is_(None))
                .order_by(AiDraft.scheduled_at)
                .limit(limit)
                .all()
            )

    def get_pending_unscheduled_drafts(
        self, tenant_id: str = DEFAULT_TENANT, limit: int = 50
    ) -> List[AiDraft]:
        """Borradores pendientes de revisión, sin programar ni publicar."""
        with self.get_session() as session:
            return (
                session.query(AiDraft)
                .filter(AiDraft.tenant_id == tenant_id)
                .filter(AiDraft.scheduled_at.is_(None))
                .filter(AiDraft.published_as.is_(None))
                .filter(AiDraft.review_status == "pending")
                .filter(AiDraft.publish_status == "pendiente")
                .order_by(AiDraft.created_at)
                .limit(limit)
                .all()
            )

    # =====================================
    # CONFIGURACIÓN POR TENANT
    # =====================================

    def _get_or_create_config(self, session: Session, tenant_id: str) -> AiConfig:
        config = session.query(AiConfig).filter_by(tenant_id=tenant_id).first()
        if config is None:
            config = AiConfig(tenant_id=tenant_id)
            session.add(config)
            session.flush()
            logger.info(f"🆕 Configuración creada con valores por defecto para {tenant_id}")
        return config

    def get_ai_config(self, tenant_id: str = DEFAULT_TENANT) -> AiConfig:
        """Configuración del tenant; la crea con valores por defecto si no existe."""
        with self.get_session() as session:
            return self._get_or_create_config(session, tenant_id)

    def update_ai_config(
        self, changes: Dict[str, Any], tenant_id: str = DEFAULT_TENANT
    ) -> AiConfig:
        """
        Aplica cambios validados a la configuración del tenant.

        Los valores numéricos se recortan a su rango; las enumeraciones
        inválidas y los pesos que no suman 1 lanzan ValueError.
        """
        clean = self._validate_config_changes(changes)

        with self.get_session() as session:
            config = self._get_or_create_config(session, tenant_id)
            for name, value in clean.items():
                if name == "facebook_scheduler":
                    merged = {
                        **DEFAULT_FACEBOOK_SCHEDULER,
                        **(config.facebook_scheduler or {}),
                        **value,
                    }
                    config.facebook_scheduler = merged
                elif name == "statistics":
                    config.statistics = {**(config.statistics or {}), **value}
                else:
                    setattr(config, name, value)
            return config

    def _validate_config_changes(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        clean: Dict[str, Any] = {}
        for name, value in (changes or {}).items():
            if name in AI_CONFIG_RANGES:
                low, high = AI_CONFIG_RANGES[name]
                column_default = AiConfig.__table__.c[name].default.arg
                clean[name] = _clamp(value, low, high, column_default)
            elif name in AI_CONFIG_BOOLEANS:
                clean[name] = bool(value)
            elif name in AI_CONFIG_LISTS:
                if not isinstance(value, list):
                    raise ValueError(f"{name} debe ser una lista")
                clean[name] = value
            elif name == "scan_frequency":
                if value not in SCAN_FREQUENCIES:
                    raise ValueError(f"scan_frequency inválida: {value}")
                clean[name] = value
            elif name == "image_provider":
                if value not in IMAGE_PROVIDERS:
                    raise ValueError(f"image_provider inválido: {value}")
                clean[name] = value
            elif name == "ai_model":
                if not isinstance(value, str) or not value.strip():
                    raise ValueError("ai_model no puede estar vacío")
                clean[name] = value.strip()
            elif name == "impact_weights":
                try:
                    weights = ImpactWeightsConfig.model_validate(value)
                except ValidationError as exc:
                    raise ValueError(f"impact_weights inválidos: {exc}") from exc
                clean[name] = weights.model_dump(mode="python", by_alias=True)
            elif name == "facebook_scheduler":
                clean[name] = self._validate_facebook_scheduler(value)
            elif name in ("statistics", "last_scan_at", "next_scan_at", "is_scanning"):
                clean[name] = value
            else:
                raise ValueError(f"Campo de configuración desconocido: {name}")
        return clean

    @staticmethod
    def _validate_facebook_scheduler(value: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(value, dict):
            raise ValueError("facebook_scheduler debe ser un objeto")
        clean: Dict[str, Any] = {}
        for key, raw in value.items():
            if key in FACEBOOK_SCHEDULER_RANGES:
                low, high = FACEBOOK_SCHEDULER_RANGES[key]
                clean[key] = _clamp(raw, low, high, DEFAULT_FACEBOOK_SCHEDULER[key])
            elif key == "enabled":
                clean[key] = bool(raw)
            elif key == "lastPublishedAt":
                clean[key] = raw.isoformat() if isinstance(raw, datetime) else raw
            else:
                raise ValueError(f"Campo de facebook_scheduler desconocido: {key}")
        return clean

    def set_scanning_flag(self, tenant_id: str, value: bool) -> None:
        with self.get_session() as session:
            config = self._get_or_create_config(session, tenant_id)
            config.is_scanning = value

    # =====================================
    # REGISTROS DE ESCANEO Y COSTO
    # =====================================

    def log_scan(
        self,
        tenant_id: str = DEFAULT_TENANT,
        topics_found: int = 0,
        scan_type: str = "manual",
        sources: Optional[Dict[str, Any]] = None,
        duration_ms: int = 0,
        status: str = "success",
        error: Optional[str] = None,
    ) -> ScanLog:
        with self.get_session() as session:
            entry = ScanLog(
                tenant_id=tenant_id,
                topics_found=topics_found,
                scan_type=scan_type,
                sources=sources or {},
                duration_ms=duration_ms,
                status=status,
                error=error,
            )
            session.add(entry)
            session.flush()
            return entry

    def log_cost(
        self,
        cost_type: str,
        cost_usd: float,
        tenant_id: str = DEFAULT_TENANT,
        draft_id: Optional[int] = None,
        topic_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CostLog:
        with self.get_session() as session:
            entry = CostLog(
                tenant_id=tenant_id,
                type=cost_type,
                cost_usd=cost_usd,
                draft_id=draft_id,
                topic_id=topic_id,
                cost_metadata=metadata or {},
            )
            session.add(entry)
            session.flush()
            return entry

    def get_last_scan_log(self, tenant_id: str = DEFAULT_TENANT) -> Optional[ScanLog]:
        with self.get_session() as session:
            return (
                session.query(ScanLog)
                .filter(ScanLog.tenant_id == tenant_id)
                .order_by(desc(ScanLog.created_at), desc(ScanLog.id))
                .first()
            )

    # =====================================
    # ANÁLISIS Y ESTADÍSTICAS
    # =====================================

    def get_usage_aggregates(
        self, start: datetime, end: datetime, tenant_id: str = DEFAULT_TENANT
    ) -> Dict[str, Any]:
        """Conteos crudos de escaneos, temas, borradores y costos en un rango."""
        with self.get_session() as session:
            scan_count, topics_found = (
                session.query(func.count(ScanLog.id), func.sum(ScanLog.topics_found))
                .filter(ScanLog.tenant_id == tenant_id)
                .filter(ScanLog.created_at >= start)
                .filter(ScanLog.created_at <= end)
                .one()
            )

            topic_counts = dict(
                session.query(AiTopic.status, func.count(AiTopic.id))
                .filter(AiTopic.tenant_id == tenant_id)
                .filter(AiTopic.detected_at >= start)
                .filter(AiTopic.detected_at <= end)
                .group_by(AiTopic.status)
                .all()
            )

            draft_counts = dict(
                session.query(AiDraft.review_status, func.count(AiDraft.id))
                .filter(AiDraft.tenant_id == tenant_id)
                .filter(AiDraft.created_at >= start)
                .filter(AiDraft.created_at <= end)
                .group_by(AiDraft.review_status)
                .all()
            )

            topics_selected = (
                session.query(func.count(AiTopic.id))
                .filter(AiTopic.tenant_id == tenant_id)
                .filter(AiTopic.detected_at >= start)
                .filter(AiTopic.detected_at <= end)
                .filter(AiTopic.selected_at.isnot(None))
                .scalar()
            )

            approved_drafts = (
                session.query(func.count(AiDraft.id))
                .filter(AiDraft.tenant_id == tenant_id)
                .filter(AiDraft.review_status == "approved")
                .filter(AiDraft.reviewed_at >= start)
                .filter(AiDraft.reviewed_at <= end)
                .scalar()
            )

            cost_rows = (
                session.query(
                    CostLog.type,
                    func.sum(CostLog.cost_usd),
                    func.count(CostLog.id),
                )
                .filter(CostLog.tenant_id == tenant_id)
                .filter(CostLog.created_at >= start)
                .filter(CostLog.created_at <= end)
                .group_by(CostLog.type)
                .all()
            )

        return {
            "scan_count": scan_count or 0,
            "topics_found": int(topics_found or 0),
            "topics_by_status": topic_counts,
            "drafts_by_review_status": draft_counts,
            "approved_drafts": approved_drafts or 0,
            "topics_selected": topics_selected or 0,
            "costs_by_type": {
                row[0]: {"total": float(row[1] or 0.0), "count": row[2]} for row in cost_rows
            },
        }

    # =====================================
    # NOTICIAS PUBLICADAS
    # =====================================

    def create_news_post(self, **fields: Any) -> NewsPost:
        with self.get_session() as session:
            post = NewsPost(**fields)
            session.add(post)
            session.flush()
            logger.info(f"📰 Noticia creada: {post.titulo[:50]}...")
            return post

    def get_news_post(self, news_id: int) -> Optional[NewsPost]:
        with self.get_session() as session:
            return session.query(NewsPost).filter_by(id=news_id).first()

    def release_due_news(self, now: Optional[datetime] = None) -> int:
        """Pasa a ``published`` las noticias programadas cuya fecha ya llegó."""
        now = self._ensure_timezone(now) or datetime.now(timezone.utc)
        with self.get_session() as session:
            released = (
                session.query(NewsPost)
                .filter(NewsPost.status == "scheduled")
                .filter(NewsPost.published_at <= now)
                .update({"status": "published", "published_at": now}, synchronize_session=False)
            )
        if released:
            logger.info(f"📅 {released} noticias programadas publicadas")
        return released or 0

    def publish_draft_atomically(
        self, draft_id: int, news_fields: Dict[str, Any], published_at: datetime
    ) -> Tuple[Optional[AiDraft], Optional[NewsPost]]:
        """
        Crea la noticia y marca el borrador como publicado en una sola
        transacción. Devuelve (None, None) si el borrador no existe.
        """
        with self.get_session() as session:
            draft = session.query(AiDraft).filter_by(id=draft_id).first()
            if not draft:
                return None, None
            post = NewsPost(**news_fields)
            session.add(post)
            session.flush()
            draft.published_as = post.id
            draft.published_at = published_at
            draft.status = "published"
            draft.publish_status = "publicado"
            draft.updated_at = datetime.now(timezone.utc)
            return draft, post

    def _facebook_candidates_query(self, session: Session, tenant_id: Optional[str]):
        query = (
            session.query(NewsPost)
            .filter(NewsPost.status == "published")
            .filter(
                or_(
                    NewsPost.published_to_facebook.is_(None),
                    NewsPost.published_to_facebook == False,  # noqa: E712
                )
            )
            .filter(
                or_(
                    NewsPost.facebook_status.is_(None),
                    NewsPost.facebook_status == "not_shared",
                )
            )
        )
        if tenant_id:
            query = query.filter(NewsPost.tenant_id == tenant_id)
        return query

    def _facebook_tier_query(
        self,
        session: Session,
        tenant_id: Optional[str],
        category: Optional[str],
        exclude_priority: bool,
        evergreen: bool,
        published_from: Optional[datetime],
        published_before: Optional[datetime],
        published_until: Optional[datetime],
    ):
        query = self._facebook_candidates_query(session, tenant_id)
        if category:
            query = query.filter(NewsPost.categoria == category)
        if exclude_priority:
            query = query.filter(
                or_(
                    NewsPost.categoria.is_(None),
                    NewsPost.categoria.notin_(FACEBOOK_PRIORITY_CATEGORIES),
                )
            )
        if evergreen:
            query = query.filter(NewsPost.is_evergreen == True)  # noqa: E712
        if published_from is not None:
            query = query.filter(NewsPost.published_at >= published_from)
        if published_before is not None:
            query = query.filter(NewsPost.published_at < published_before)
        if published_until is not None:
            query = query.filter(NewsPost.published_at <= published_until)
        return query

    def find_facebook_candidate(
        self,
        tenant_id: Optional[str] = None,
        category: Optional[str] = None,
        exclude_priority: bool = False,
        evergreen: bool = False,
        published_from: Optional[datetime] = None,
        published_before: Optional[datetime] = None,
        published_until: Optional[datetime] = None,
    ) -> Optional[NewsPost]:
        """La noticia candidata más antigua dentro de un tramo de prioridad."""
        with self.get_session() as session:
            query = self._facebook_tier_query(
                session,
                tenant_id,
                category,
                exclude_priority,
                evergreen,
                published_from,
                published_before,
                published_until,
            )
            return query.order_by(NewsPost.published_at, NewsPost.id).first()

    def count_facebook_candidates(
        self,
        tenant_id: Optional[str] = None,
        category: Optional[str] = None,
        exclude_priority: bool = False,
        evergreen: bool = False,
        published_from: Optional[datetime] = None,
        published_before: Optional[datetime] = None,
        published_until: Optional[datetime] = None,
    ) -> int:
        with self.get_session() as session:
            query = self._facebook_tier_query(
                session,
                tenant_id,
                category,
                exclude_priority,
                evergreen,
                published_from,
                published_before,
                published_until,
            )
            return query.count()

    def count_facebook_published_since(
        self, since: datetime, tenant_id: Optional[str] = None
    ) -> int:
        with self.get_session() as session:
            query = (
                session.query(func.count(NewsPost.id))
                .filter(NewsPost.published_to_facebook == True)  # noqa: E712
                .filter(NewsPost.facebook_published_at >= since)
            )
            if tenant_id:
                query = query.filter(NewsPost.tenant_id == tenant_id)
            return query.scalar() or 0

    def try_lock_news_for_facebook(
        self, news_id: int, now: Optional[datetime] = None
    ) -> Optional[NewsPost]:
        """
        Marca la noticia como ``sharing`` solo si nadie más la tomó.

        El UPDATE condicional es atómico: si otro proceso la bloqueó o ya
        se publicó, no se afecta ninguna fila y se devuelve None.
        """
        now = self._ensure_timezone(now) or datetime.now(timezone.utc)
        with self.get_session() as session:
            result = session.execute(
                update(NewsPost)
                .where(NewsPost.id == news_id)
                .where(
                    or_(
                        NewsPost.facebook_status.is_(None),
                        NewsPost.facebook_status.notin_(("sharing", "published")),
                    )
                )
                .where(
                    or_(
                        NewsPost.published_to_facebook.is_(None),
                        NewsPost.published_to_facebook == False,  # noqa: E712
                    )
                )
                .values(
                    facebook_status="sharing",
                    facebook_sharing_since=now,
                    facebook_attempt_count=func.coalesce(
                        NewsPost.facebook_attempt_count, 0
                    )
                    + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
            return session.query(NewsPost).filter_by(id=news_id).first()

    def mark_news_facebook_published(
        self,
        news_id: int,
        post_id: str,
        permalink: Optional[str],
        now: Optional[datetime] = None,
    ) -> None:
        now = self._ensure_timezone(now) or datetime.now(timezone.utc)
        with self.get_session() as session:
            post = session.query(NewsPost).filter_by(id=news_id).first()
            if not post:
                return
            post.published_to_facebook = True
            post.facebook_published_at = now
            post.facebook_status = "published"
            post.facebook_post_id = post_id
            post.facebook_permalink_url = permalink
            post.facebook_last_error = None

    def mark_news_facebook_error(
        self, news_id: int, error: str, status: str = "error"
    ) -> None:
        with self.get_session() as session:
            post = session.query(NewsPost).filter_by(id=news_id).first()
            if not post:
                return
            post.facebook_status = status
            post.facebook_last_error = error

    # =====================================
    # UTILIDADES Y MANTENIMIENTO
    # =====================================

    def cleanup_old_data(
        self, days_to_keep: int = 30, tenant_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Archiva temas pendientes viejos y elimina registros de escaneo y
        costo anteriores al corte.
        """
        cutoff_date = datetime.now(timezone.utc) - timedelta(days=days_to_keep)

        with self.get_session() as session:
            topics_query = (
                session.query(AiTopic)
                .filter(AiTopic.status == "pending")
                .filter(AiTopic.detected_at < cutoff_date)
            )
            scan_query = session.query(ScanLog).filter(ScanLog.created_at < cutoff_date)
            cost_query = session.query(CostLog).filter(CostLog.created_at < cutoff_date)
            if tenant_id:
                topics_query = topics_query.filter(AiTopic.tenant_id == tenant_id)
                scan_query = scan_query.filter(ScanLog.tenant_id == tenant_id)
                cost_query = cost_query.filter(CostLog.tenant_id == tenant_id)

            archived_topics = topics_query.update(
                {"status": "archived", "archived_at": datetime.now(timezone.utc)},
                synchronize_session=False,
            )
            deleted_scans = scan_query.delete(synchronize_session=False)
            deleted_costs = cost_query.delete(synchronize_session=False)

            logger.info(
                f"🧹 Limpieza completada: {archived_topics} temas archivados, "
                f"{deleted_scans} escaneos y {deleted_costs} costos eliminados"
            )

            return {
                "archived_topics": archived_topics,
                "deleted_scan_logs": deleted_scans,
                "deleted_cost_logs": deleted_costs,
                "cutoff_date": cutoff_date.isoformat(),
            }

    def get_health_status(self) -> Dict[str, Any]:
        """Resumen del estado de la base de datos para /readyz y el CLI."""
        with self.get_session() as session:
            pending_topics = (
                session.query(func.count(AiTopic.id))
                .filter(AiTopic.status == "pending")
                .scalar()
            )
            pending_drafts = (
                session.query(func.count(AiDraft.id))
                .filter(AiDraft.review_status == "pending")
                .scalar()
            )
            scheduled_drafts = (
                session.query(func.count(AiDraft.id))
                .filter(AiDraft.publish_status == "programado")
                .scalar()
            )
            published_news = session.query(func.count(NewsPost.id)).scalar()
            facebook_errors = (
                session.query(func.count(NewsPost.id))
                .filter(NewsPost.facebook_status == "error")
                .scalar()
            )
            last_scan = (
                session.query(ScanLog)
                .order_by(desc(ScanLog.created_at), desc(ScanLog.id))
                .first()
            )

            return {
                "pending_topics": pending_topics or 0,
                "pending_drafts": pending_drafts or 0,
                "scheduled_drafts": scheduled_drafts or 0,
                "published_news": published_news or 0,
                "facebook_errors": facebook_errors or 0,
                "last_scan_status": last_scan.status if last_scan else None,
                "database_type": self.config["type"],
                "status": (
                    "healthy"
                    if not last_scan or last_scan.status != "failed"
                    else "warning"
                ),
            }


# Instancia global del manejador de base de datos
# ===============================================

_db_manager = None


def get_database_manager() -> DatabaseManager:
    """Singleton del DatabaseManager con la configuración de settings.py."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager
