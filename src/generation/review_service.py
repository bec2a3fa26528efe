# src/generation/review_service.py
# Revisión editorial de borradores
# ================================

"""
Dos caminos de revisión:

- El editor decide (aprobar, rechazar, pedir cambios) con ``review_draft``.
- El editor pide al LLM una propuesta (``generate_revision``), la mira como
  diff y la aplica con ``apply_revision``.

La propuesta vive en ``AiDraft.review`` (JSON). Cada escritura asigna un
dict nuevo: SQLAlchemy no detecta mutaciones dentro de columnas JSON.
"""

import difflib
import json
import re
import time
from typing import Any, Dict, Optional

from config.settings import GENERATION_CONFIG
from src.stats.stats_service import StatsService, calculate_llm_cost
from src.storage import DatabaseManager, get_database_manager
from src.utils.datetime_utils import utc_now
from src.utils.logger import create_module_logger

from .llm_client import LLMClient, LLMError, get_llm_client, retry_llm_call

logger = create_module_logger("review")

REVIEW_ACTIONS = {
    "approve": "approved",
    "reject": "rejected",
    "request_changes": "changes_requested",
}
MIN_PROPOSED_CHARS = 100
DIFF_CONTEXT_LINES = 3

_FENCE_START_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_END_RE = re.compile(r"\s*```$")

REVISION_SYSTEM_PROMPT = """Eres un EDITOR JEFE profesional. Trabajas en dos fases obligatorias.

FASE 1: aplica las instrucciones del editor.
- Realiza los cambios que solicita el editor.
- Mejora claridad, coherencia y ritmo de lectura.
- Corrige errores ortográficos y gramaticales.

FASE 2: relee TODO el documento (título, bajada y cuerpo) y corrige cualquier
frase que presente hechos futuros como confirmados.
- Verbos prohibidos para hechos futuros: lanza, implementará, se realizará,
  comenzará, llegará, promete, garantizará, reducirá, será, se espera que,
  mejorará, transformará, revolucionará, permitirá, logrará, asegurará.
- Reemplázalos por: podría, tiene previsto, planea, se proyecta, según
  estimaciones, pendiente de aprobación, se estima que.
- Los impactos se presentan como potenciales, nunca como garantizados.
- No atribuyas motivaciones sin cita.

FORMATO DE RESPUESTA (solo JSON válido):
{
  "titulo": "El título revisado",
  "bajada": "La bajada revisada",
  "contenidoHTML": "<p>El contenido HTML completo revisado...</p>"
}
El contenidoHTML debe incluir TODO el cuerpo con etiquetas HTML."""


class ReviewError(Exception):
    """Operación de revisión inválida para el estado del borrador."""

    def __init__(self, message: str, code: str = "REVIEW_ERROR", http_status: int = 400):
        super().__init__(message)
        self.code = code
        self.http_status = http_status


def build_revision_prompt(draft: Any, notes: Optional[str]) -> str:
    content = draft.contenido_html or draft.contenido_markdown or ""
    return (
        "DOCUMENTO A REVISAR:\n\n"
        f"TÍTULO ACTUAL:\n{draft.titulo or 'Sin título'}\n\n"
        f"BAJADA ACTUAL:\n{draft.bajada or 'Sin bajada'}\n\n"
        f"CONTENIDO ACTUAL:\n{content}\n\n"
        f"NOTAS DEL EDITOR (aplica estos cambios):\n{notes or 'Mejorar claridad general y corregir errores'}\n\n"
        "Devuelve SOLO el JSON con los 3 campos revisados (titulo, bajada, contenidoHTML)."
    )


def strip_code_fences(text: str) -> str:
    cleaned = _FENCE_START_RE.sub("", (text or "").strip())
    return _FENCE_END_RE.sub("", cleaned).strip()


def unified_diff(original: str, proposed: str) -> str:
    lines = difflib.unified_diff(
        original.splitlines(keepends=True),
        proposed.splitlines(keepends=True),
        fromfile="original",
        tofile="propuesta",
        n=DIFF_CONTEXT_LINES,
    )
    return "".join(lines)


class ReviewService:
    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        llm: Optional[LLMClient] = None,
        stats: Optional[StatsService] = None,
    ):
        self.db = db_manager or get_database_manager()
        self.llm = llm or get_llm_client()
        self.stats = stats or StatsService(self.db)

    def _get_draft_or_raise(self, draft_id: int):
        draft = self.db.get_draft(draft_id)
        if not draft:
            raise ReviewError(f"Borrador {draft_id} no encontrado", "NOT_FOUND", 404)
        return draft

    def review_draft(self, draft_id: int, action: str, notes: Optional[str] = None, user: Optional[str] = None):
        """
        Registra la decisión del editor.

        Raises:
            ReviewError: acción desconocida (400) o borrador inexistente (404).
        """
        if action not in REVIEW_ACTIONS:
            raise ReviewError(f"Acción de revisión inválida: {action}", "INVALID_ACTION", 400)
        draft = self._get_draft_or_raise(draft_id)

        now = utc_now()
        fields: Dict[str, Any] = {
            "review_status": REVIEW_ACTIONS[action],
            "reviewed_at": now,
            "reviewed_by": user,
        }
        if notes is not None:
            fields["review_notes"] = notes
        if action == "approve" and not draft.approved_at:
            fields["approved_at"] = now
        if action == "reject":
            fields["status"] = "rejected"

        updated = self.db.update_draft(draft_id, **fields)
        logger.info(f"🧑‍⚖️ Borrador {draft_id}: {action} por {user or 'sistema'}")
        return updated

    def generate_revision(
        self,
        draft_id: int,
        notes: Optional[str] = None,
        model: Optional[str] = None,
        user: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Pide al LLM una versión revisada y la deja lista para aplicar.

        Devuelve ``{ok, status}`` con ``status`` en ready, nochange o error;
        los fallos quedan registrados en ``draft.review``.

        Raises:
            ReviewError: si el borrador no existe.
        """
        draft = self._get_draft_or_raise(draft_id)
        model = model or GENERATION_CONFIG["revision_model"]
        started = time.monotonic()
        requested_at = utc_now()
        logger.info(f"📝 Revisión solicitada para borrador {draft_id} con {model}")

        try:
            original = draft.contenido_html or draft.contenido_markdown or ""
            if not original.strip():
                raise ValueError("El borrador no tiene contenido para revisar")

            self.db.update_draft(draft_id, review_status="changes_in_progress")
            response = retry_llm_call(
                lambda: self.llm.call(
                    model=model,
                    system=REVISION_SYSTEM_PROMPT,
                    user=build_revision_prompt(draft, notes),
                    temperature=GENERATION_CONFIG["revision_temperature"],
                    json_mode=False,
                )
            )
            self.stats.log_cost(
                "llm",
                calculate_llm_cost(
                    model, response.usage.get("prompt_tokens", 0), response.usage.get("completion_tokens", 0)
                ),
                tenant_id=draft.tenant_id,
                draft_id=draft_id,
                metadata={"model": model, "phase": "revision", **response.usage},
            )

            proposed_data = self._parse_proposal(response.text, draft)
            proposed = proposed_data.get("contenidoHTML") or response.text
            if not proposed or len(proposed.strip()) < MIN_PROPOSED_CHARS:
                raise ValueError("La IA devolvió una respuesta muy corta o vacía")

            diff = unified_diff(original, proposed)
            changed = (
                original.strip() != proposed.strip()
                or (proposed_data.get("titulo") and proposed_data["titulo"] != draft.titulo)
                or (proposed_data.get("bajada") and proposed_data["bajada"] != draft.bajada)
            )
            if not changed:
                self.db.update_draft(draft_id, review_status=draft.review_status)
                logger.info(f"⏸️ Revisión sin cambios para borrador {draft_id}")
                return {
                    "ok": False,
                    "status": "nochange",
                    "message": "La IA devolvió un contenido idéntico al original",
                }

            review = {
                "status": "ready",
                "proposed": proposed,
                "proposedTitulo": proposed_data.get("titulo") or draft.titulo,
                "proposedBajada": proposed_data.get("bajada") or draft.bajada,
                "diff": diff,
                "model": model,
                "requestedNotes": notes or "",
                "requestedBy": user,
                "requestedAt": requested_at.isoformat(),
                "finishedAt": utc_now().isoformat(),
                "generationTime": int((time.monotonic() - started) * 1000),
                "history": (draft.review or {}).get("history", []),
            }
            self.db.update_draft(draft_id, review=review, review_status="changes_completed")
            logger.info(f"✅ Revisión lista para borrador {draft_id} ({len(diff)} chars de diff)")
            return {"ok": True, "status": "ready", "proposed": proposed, "diff": diff}

        except (LLMError, ValueError) as exc:
            logger.error(f"❌ Error generando revisión para borrador {draft_id}: {exc}")
            review = dict(draft.review or {})
            review.update(status="error", errorMsg=str(exc), errorAt=utc_now().isoformat())
            self.db.update_draft(draft_id, review=review, review_status=draft.review_status)
            return {"ok": False, "status": "error", "error": str(exc)}

    @staticmethod
    def _parse_proposal(text: str, draft: Any) -> Dict[str, Any]:
        try:
            data = json.loads(strip_code_fences(text))
        except json.JSONDecodeError as exc:
            logger.warning(f"⚠️ Revisión sin JSON válido ({exc}); se usa el texto como HTML")
            return {"titulo": draft.titulo, "bajada": draft.bajada, "contenidoHTML": text}
        if not isinstance(data, dict):
            return {"titulo": draft.titulo, "bajada": draft.bajada, "contenidoHTML": text}
        return data

    def apply_revision(self, draft_id: int, user: Optional[str] = None):
        """
        Aplica la propuesta lista y guarda la versión anterior en el historial.

        Raises:
            ReviewError: borrador inexistente (404) o sin propuesta lista (409).
        """
        draft = self._get_draft_or_raise(draft_id)
        review = dict(draft.review or {})
        if review.get("status") != "ready":
            raise ReviewError("No hay revisión lista para aplicar", "REVISION_NOT_READY", 409)
        if not review.get("proposed"):
            raise ReviewError("La propuesta de revisión está vacía", "REVISION_EMPTY", 409)

        now = utc_now().isoformat()
        review["history"] = list(review.get("history") or []) + [
            {
                "content": draft.contenido_html or draft.contenido_markdown,
                "titulo": draft.titulo,
                "bajada": draft.bajada,
                "appliedAt": now,
                "appliedBy": user,
                "notes": review.get("requestedNotes"),
            }
        ]
        review.update(status="applied", appliedAt=now, appliedBy=user)

        updated = self.db.update_draft(
            draft_id,
            titulo=review.get("proposedTitulo") or draft.titulo,
            bajada=review.get("proposedBajada") or draft.bajada,
            contenido_html=review["proposed"],
            contenido_markdown="",
            review=review,
        )
        logger.info(f"✅ Revisión aplicada al borrador {draft_id} por {user or 'sistema'}")
        return updated

    def get_revision_status(self, draft_id: int) -> Dict[str, Any]:
        draft = self.db.get_draft(draft_id)
        if not draft:
            return {"status": "not_found"}
        review = draft.review or {}
        if not review.get("status"):
            return {"status": "none"}
        return {
            "status": review["status"],
            "proposed": review.get("proposed"),
            "proposedTitulo": review.get("proposedTitulo"),
            "proposedBajada": review.get("proposedBajada"),
            "diff": review.get("diff"),
            "errorMsg": review.get("errorMsg"),
            "requestedAt": review.get("requestedAt"),
            "finishedAt": review.get("finishedAt"),
            "model": review.get("model"),
        }


_review_service: Optional[ReviewService] = None


def get_review_service() -> ReviewService:
    global _review_service
    if _review_service is None:
        _review_service = ReviewService()
    return _review_service
