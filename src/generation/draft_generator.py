# src/generation/draft_generator.py
# Generación de borradores del Redactor IA
# ========================================

"""
De tema a borrador: prompts, llamada al LLM, normalización del JSON,
controles de calidad y estructura, portada, categoría final y guardado.

Una generación por tenant a la vez, igual que el escaneo. Los errores de
un tema no detienen el lote: el tema vuelve a ``pending`` y se sigue con
el siguiente.
"""

import json
import threading
import time
from typing import Any, Dict, List, Optional, Sequence

from config.settings import DEFAULT_TENANT, GENERATION_CONFIG, IMAGE_CONFIG
from src.classification import GENERAL, classify_category, derive_category
from src.contracts import DraftPayloadModel
from src.stats.stats_service import StatsService, calculate_llm_cost
from src.storage import DatabaseManager, get_database_manager
from src.utils.logger import create_module_logger

from .image_service import ImageProviderError, ImageService
from .llm_client import LLMClient, LLMError, get_llm_client, parse_clean_json, retry_llm_call
from .prompt_builder import (
    build_enhanced_input,
    build_expand_prompt,
    build_system_prompt,
    markdown_to_html,
    strict_validate_and_autocorrect,
    validate_content_quality,
)

logger = create_module_logger("generation")

RAW_RESPONSE_CHARS = 5000
ENSEMBLE_OVERRIDE_GENERAL = 0.55
ENSEMBLE_OVERRIDE_ANY = 0.70


class GenerationInProgressError(Exception):
    code = "GENERATION_IN_PROGRESS"
    http_status = 429

    def __init__(self, tenant_id: str):
        super().__init__("Ya hay una generación en curso. Por favor espera a que termine.")
        self.tenant_id = tenant_id


class DraftRejectedError(Exception):
    """El borrador no pasó los controles de calidad o de estructura."""

    http_status = 422

    def __init__(self, message: str, code: str = "STRUCTURE_INVALID", details: Optional[List[str]] = None):
        super().__init__(message)
        self.code = code
        self.details = details or []


_GENERATION_LOCKS: Dict[str, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


def _generation_lock(tenant_id: str) -> threading.Lock:
    with _LOCKS_GUARD:
        return _GENERATION_LOCKS.setdefault(tenant_id, threading.Lock())


def normalize_draft_payload(topic: Any, response: Dict[str, Any]) -> Dict[str, Any]:
    """
    Asegura los campos críticos del JSON del modelo.

    Raises:
        ValueError: si ni el modelo ni el tema aportan un título.
    """
    topic_title = (getattr(topic, "titulo_sugerido", "") or "").strip()
    titulo = str(response.get("titulo") or "").strip() or topic_title
    if not titulo:
        raise ValueError("No se pudo obtener titulo del LLM ni del tema")

    bajada = response.get("bajada") if isinstance(response.get("bajada"), str) else ""
    bajada = bajada.strip()

    raw_tags = response.get("etiquetas") if isinstance(response.get("etiquetas"), list) else []
    etiquetas = [t.strip() for t in raw_tags if isinstance(t, str) and t.strip()]
    etiquetas = etiquetas[: GENERATION_CONFIG["max_tags"]]

    categoria = str(response.get("categoria") or "").strip()
    categoria = categoria or (getattr(topic, "categoria_sugerida", "") or "").strip()
    if not categoria:
        logger.info("🏷️ Categoría ausente, derivando automáticamente")
        categoria = derive_category(titulo, bajada, etiquetas)

    contenido = response.get("contenidoMarkdown")
    contenido = contenido.strip() if isinstance(contenido, str) else ""

    verifications = response.get("verifications")
    verifications = verifications if isinstance(verifications, list) else []

    prompts = response.get("promptsImagen")
    prompts = prompts if isinstance(prompts, dict) else {}
    principal = str(prompts.get("principal") or "").strip() or (
        f"Editorial news cover sobre: {topic_title or titulo}"
    )
    opcional = str(prompts.get("opcional") or "").strip()

    return {
        "titulo": titulo,
        "bajada": bajada,
        "categoria": categoria,
        "etiquetas": etiquetas,
        "contenidoMarkdown": contenido,
        "verifications": verifications,
        "promptsImagen": [p for p in (principal, opcional) if p],
    }


def calculate_confidence(response: Dict[str, Any]) -> int:
    score = 70
    if response.get("verifications"):
        score += 10
    if len(response.get("contenidoMarkdown") or "") > 500:
        score += 10
    if len(response.get("etiquetas") or []) >= 3:
        score += 10
    return min(100, score)


def originality(norm: Dict[str, Any]) -> tuple:
    """(originalityScore, contentOrigin) según verificaciones, extensión y etiquetas."""
    multiple_sources = len(norm.get("verifications") or []) >= 3
    substantial = len(norm.get("contenidoMarkdown") or "") > 500
    structured_tags = len(norm.get("etiquetas") or []) >= 3

    if multiple_sources and substantial and structured_tags:
        return 0.7, "ai_synthesized"
    if multiple_sources and substantial:
        return 0.6, "ai_synthesized"
    if multiple_sources or substantial:
        return 0.5, "source_derived"
    return 0.4, "source_derived"


def choose_category(llm_category: str, ensemble_category: str, ensemble_confidence: float) -> str:
    if llm_category == GENERAL and ensemble_category != GENERAL and ensemble_confidence >= ENSEMBLE_OVERRIDE_GENERAL:
        return ensemble_category
    if not llm_category:
        return ensemble_category
    if ensemble_confidence >= ENSEMBLE_OVERRIDE_ANY:
        return ensemble_category
    return llm_category


class DraftGenerator:
    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        llm: Optional[LLMClient] = None,
        image_service: Optional[ImageService] = None,
        stats: Optional[StatsService] = None,
    ):
        self.db = db_manager or get_database_manager()
        self.llm = llm or get_llm_client()
        self.stats = stats or StatsService(self.db)
        self.images = image_service or ImageService(stats=self.stats)

    def generate_drafts(
        self,
        topic_ids: Sequence[int],
        user: Optional[str] = None,
        mode: str = "factual",
        format_style: str = "standard",
        tenant_id: str = DEFAULT_TENANT,
    ) -> List[Any]:
        """
        Genera un borrador por tema. Cada tema pasa por selected → generated
        → archived; si falla vuelve a pending.

        Raises:
            GenerationInProgressError: si el tenant ya está generando.
        """
        lock = _generation_lock(tenant_id)
        if not lock.acquire(blocking=False):
            raise GenerationInProgressError(tenant_id)

        logger.info(f"🔒 Generando {len(topic_ids)} borradores ({mode}, {format_style}) para {tenant_id}")
        drafts = []
        try:
            for topic_id in topic_ids:
                topic = self.db.get_topic(topic_id)
                if not topic:
                    logger.warning(f"⚠️ Tema {topic_id} no encontrado")
                    continue

                self.db.update_topic_status(topic.id, "selected")
                try:
                    draft = self.generate_single_draft(topic, user, mode, format_style)
                except (LLMError, DraftRejectedError, ValueError) as exc:
                    logger.error(f"❌ Error generando borrador para tema {topic_id}: {exc}")
                    self.db.update_topic_status(topic.id, "pending")
                    continue
                except Exception as exc:
                    logger.exception(f"❌ Fallo inesperado generando borrador para tema {topic_id}: {exc}")
                    self.db.update_topic_status(topic.id, "pending")
                    continue

                self.db.update_topic_status(topic.id, "generated")
                self.db.archive_topic(topic.id)
                drafts.append(draft)
        finally:
            lock.release()
            logger.info(f"🔓 Candado de generación liberado para {tenant_id}")

        logger.info(f"✅ {len(drafts)}/{len(topic_ids)} borradores generados")
        return drafts

    def generate_single_draft(
        self,
        topic: Any,
        user: Optional[str] = None,
        mode: str = "factual",
        format_style: str = "standard",
    ):
        """
        Raises:
            LLMError: la llamada al modelo falló tras los reintentos.
            ValueError: JSON ilegible o sin título.
            DraftRejectedError: errores de calidad o estructura irrecuperable.
        """
        started = time.monotonic()
        tenant_id = getattr(topic, "tenant_id", None) or DEFAULT_TENANT
        config = self.db.get_ai_config(tenant_id)
        model = config.ai_model or GENERATION_CONFIG["default_model"]
        temperature = (
            GENERATION_CONFIG["opinion_temperature"] if mode == "opinion" else GENERATION_CONFIG["factual_temperature"]
        )

        system = build_system_prompt(mode, format_style)
        inputs = build_enhanced_input(topic, mode, format_style)
        user_prompt = json.dumps(inputs, ensure_ascii=False, indent=2, default=str)

        response = self._call_llm(model, system, user_prompt, temperature, tenant_id, topic.id, "draft")
        parsed = parse_clean_json(response.text)
        norm = normalize_draft_payload(topic, parsed)
        raw_text = response.text
        tokens_used = response.usage.get("total_tokens", 0)

        content_length = len(norm["contenidoMarkdown"])
        if mode == "factual" and content_length < GENERATION_CONFIG["factual_min_chars"]:
            logger.warning(f"⚠️ Contenido corto ({content_length} chars), pidiendo ampliación")
            expand_prompt = build_expand_prompt(inputs, content_length, GENERATION_CONFIG["factual_min_chars"])
            expanded = self._call_llm(model, system, expand_prompt, temperature, tenant_id, topic.id, "expand")
            tokens_used += expanded.usage.get("total_tokens", 0)
            try:
                candidate = normalize_draft_payload(topic, parse_clean_json(expanded.text))
            except ValueError as exc:
                logger.warning(f"⚠️ Ampliación descartada: {exc}")
            else:
                if len(candidate["contenidoMarkdown"]) > content_length:
                    norm, raw_text = candidate, expanded.text
        elif mode == "opinion" and content_length < GENERATION_CONFIG["opinion_min_chars"]:
            logger.warning(f"⚠️ Opinión por debajo de {GENERATION_CONFIG['opinion_min_chars']} caracteres")

        quality = validate_content_quality(norm, mode)
        if quality["errors"]:
            raise DraftRejectedError(
                f"Borrador rechazado: {'; '.join(quality['errors'])}", "QUALITY_INVALID", quality["errors"]
            )
        for warning in quality["warnings"]:
            logger.warning(f"⚠️ {warning}")

        corrections: List[str] = []
        if mode == "factual":
            result = strict_validate_and_autocorrect(norm["contenidoMarkdown"], model)
            if not result.ok:
                raise DraftRejectedError(result.reject_reason or "Estructura inválida", "STRUCTURE_INVALID", result.missing)
            norm["contenidoMarkdown"] = result.draft
            corrections = result.corrections

        image_fields: Dict[str, Any] = {"image_status": "none"}
        if config.auto_generate_images and IMAGE_CONFIG.get("enabled", True):
            try:
                image_fields = self.images.generate_cover(
                    {"titulo": norm["titulo"], "prompts_imagen": norm["promptsImagen"]},
                    provider=config.image_provider,
                    tenant_id=tenant_id,
                )
            except ImageProviderError as exc:
                logger.error(f"❌ Error generando portada: {exc}")
                image_fields = {"image_status": "error", "image_provider": exc.provider or None}

        originality_score, content_origin = originality(norm)
        categoria, category_meta = self._final_category(norm, topic, model)

        payload = DraftPayloadModel(
            titulo=norm["titulo"],
            bajada=norm["bajada"],
            categoria=categoria,
            etiquetas=norm["etiquetas"],
            contenido_markdown=norm["contenidoMarkdown"],
            contenido_html=markdown_to_html(norm["contenidoMarkdown"]),
            fuentes=[
                {key: source.get(key) for key in ("medio", "titulo", "url", "fecha")}
                for source in (topic.fuentes_top or [])
            ],
            verifications=norm["verifications"],
            prompts_imagen=norm["promptsImagen"],
            mode=mode,
            topic_id=topic.id,
            tenant_id=tenant_id,
            generation_type="manual" if user else "auto",
            generated_by=user,
            ai_metadata={
                "model": model,
                "tokensUsed": tokens_used,
                "generationTime": int((time.monotonic() - started) * 1000),
                "confidence": calculate_confidence(parsed),
                "imageGenerationEnabled": bool(config.auto_generate_images),
                "imageProvider": image_fields.get("image_provider") or config.image_provider,
                "sourceImageUrl": topic.image_url,
                "rawResponse": (raw_text or "")[:RAW_RESPONSE_CHARS],
                "originalityScore": originality_score,
                "contentOrigin": content_origin,
                "structureCorrections": corrections,
                "qualityWarnings": quality["warnings"],
                "formatStyle": format_style,
                **category_meta,
            },
            **image_fields,
        )
        draft = self.db.save_draft(payload)
        logger.info(f"📝 Borrador {draft.id} generado en {payload.ai_metadata['generationTime']} ms: {draft.titulo[:60]}")
        return draft

    def _call_llm(
        self,
        model: str,
        system: str,
        user_prompt: str,
        temperature: float,
        tenant_id: str,
        topic_id: Optional[int],
        phase: str,
    ):
        try:
            response = retry_llm_call(
                lambda: self.llm.call(model=model, system=system, user=user_prompt, temperature=temperature, json_mode=True)
            )
        except LLMError as exc:
            self.stats.log_cost(
                "llm", 0.0, tenant_id=tenant_id, topic_id=topic_id,
                metadata={"model": model, "phase": phase, "error": str(exc)},
            )
            raise

        usage = response.usage
        cost = calculate_llm_cost(model, usage.get("prompt_tokens", 0), usage.get("completion_tokens", 0))
        self.stats.log_cost(
            "llm", cost, tenant_id=tenant_id, topic_id=topic_id,
            metadata={"model": model, "phase": phase, **usage},
        )
        return response

    def _final_category(self, norm: Dict[str, Any], topic: Any, model: str) -> tuple:
        meta = {"categoryConfidence": 0.5, "categoryLowConfidence": False, "categoryDetail": ""}
        try:
            result = classify_category(
                title=norm["titulo"],
                content=norm["contenidoMarkdown"],
                summary=norm["bajada"],
                topic_hint=getattr(topic, "categoria_sugerida", None),
                use_llm=GENERATION_CONFIG.get("classifier_use_llm", False),
                llm=self.llm,
                model=model,
            )
        except (LLMError, ValueError) as exc:
            logger.error(f"❌ Error en clasificación ensemble: {exc}")
            return norm["categoria"] or getattr(topic, "categoria_sugerida", None) or GENERAL, meta

        categoria = choose_category(norm["categoria"], result.category, result.confidence)
        logger.info(f"🏷️ Categoría final: {categoria} (ensemble {result.category} {result.confidence})")
        meta.update(
            categoryConfidence=result.confidence,
            categoryLowConfidence=result.low_confidence,
            categoryDetail=result.detail,
        )
        return categoria, meta


_generator: Optional[DraftGenerator] = None


def get_draft_generator() -> DraftGenerator:
    global _generator
    if _generator is None:
        _generator = DraftGenerator()
    return _generator
