import json

import pytest

from src.generation.review_service import (
    ReviewError,
    ReviewService,
    strip_code_fences,
    unified_diff,
)
from src.stats.stats_service import StatsService

from conftest import FakeLLM

REVISED_HTML = "<p>" + "La crisis energética podría agravarse en la capital cubana. " * 5 + "</p>"


def _service(db_manager, llm=None):
    return ReviewService(db_manager, llm=llm or FakeLLM(), stats=StatsService(db_manager))


def _proposal(**overrides):
    payload = {
        "titulo": "Apagones prolongados podrían extenderse en La Habana",
        "bajada": "La Unión Eléctrica estima un déficit de más de 1.500 MW.",
        "contenidoHTML": REVISED_HTML,
    }
    payload.update(overrides)
    return "```json\n" + json.dumps(payload, ensure_ascii=False) + "\n```"


def test_approve_stamps_reviewer_and_approval(db_manager, draft) -> None:
    updated = _service(db_manager).review_draft(draft.id, "approve", notes="Lista", user="editora")

    assert updated.review_status == "approved"
    assert updated.reviewed_by == "editora"
    assert updated.review_notes == "Lista"
    assert updated.approved_at is not None
    assert updated.reviewed_at is not None


def test_reject_marks_draft_rejected(db_manager, draft) -> None:
    updated = _service(db_manager).review_draft(draft.id, "reject")
    assert updated.review_status == "rejected"
    assert updated.status == "rejected"


def test_request_changes(db_manager, draft) -> None:
    updated = _service(db_manager).review_draft(draft.id, "request_changes", notes="Más contexto")
    assert updated.review_status == "changes_requested"
    assert updated.approved_at is None


def test_review_errors_carry_http_status(db_manager, draft) -> None:
    service = _service(db_manager)
    with pytest.raises(ReviewError) as excinfo:
        service.review_draft(draft.id, "publicar")
    assert excinfo.value.code == "INVALID_ACTION"
    assert excinfo.value.http_status == 400

    with pytest.raises(ReviewError) as excinfo:
        service.review_draft(9999, "approve")
    assert excinfo.value.http_status == 404


def test_generate_revision_stores_ready_proposal(db_manager, draft) -> None:
    llm = FakeLLM([_proposal()])

    result = _service(db_manager, llm).generate_revision(draft.id, notes="Usar condicional", user="editora")

    assert result["ok"] is True
    assert result["status"] == "ready"
    assert result["diff"].startswith("--- original")
    assert llm.calls[0]["json_mode"] is False
    assert "Usar condicional" in llm.calls[0]["user"]

    stored = db_manager.get_draft(draft.id)
    assert stored.review_status == "changes_completed"
    assert stored.review["status"] == "ready"
    assert stored.review["proposedTitulo"].startswith("Apagones prolongados podrían")
    assert stored.review["requestedBy"] == "editora"
    assert stored.titulo == draft.titulo


def test_identical_revision_reports_nochange(db_manager, draft) -> None:
    llm = FakeLLM([_proposal(titulo=draft.titulo, bajada=draft.bajada, contenidoHTML=draft.contenido_html)])

    result = _service(db_manager, llm).generate_revision(draft.id)

    assert result == {
        "ok": False,
        "status": "nochange",
        "message": "La IA devolvió un contenido idéntico al original",
    }
    assert db_manager.get_draft(draft.id).review_status == "pending"


def test_short_revision_is_recorded_as_error(db_manager, draft) -> None:
    llm = FakeLLM([_proposal(contenidoHTML="<p>corto</p>")])

    result = _service(db_manager, llm).generate_revision(draft.id)

    assert result["status"] == "error"
    stored = db_manager.get_draft(draft.id)
    assert stored.review["status"] == "error"
    assert "muy corta" in stored.review["errorMsg"]
    assert stored.review_status == "pending"


def test_plain_text_revision_is_used_as_html(db_manager, draft) -> None:
    llm = FakeLLM([REVISED_HTML])

    result = _service(db_manager, llm).generate_revision(draft.id)

    assert result["status"] == "ready"
    assert result["proposed"] == REVISED_HTML


def test_apply_revision_keeps_history(db_manager, draft) -> None:
    service = _service(db_manager, FakeLLM([_proposal()]))
    service.generate_revision(draft.id, notes="Usar condicional")

    updated = service.apply_revision(draft.id, user="editora")

    assert updated.titulo == "Apagones prolongados podrían extenderse en La Habana"
    assert updated.contenido_html == REVISED_HTML
    assert updated.contenido_markdown == ""
    assert updated.review["status"] == "applied"
    history = updated.review["history"]
    assert len(history) == 1
    assert history[0]["titulo"] == draft.titulo
    assert history[0]["content"] == draft.contenido_html
    assert history[0]["notes"] == "Usar condicional"
    assert service.get_revision_status(draft.id)["status"] == "applied"


def test_apply_without_ready_revision_conflicts(db_manager, draft) -> None:
    with pytest.raises(ReviewError) as excinfo:
        _service(db_manager).apply_revision(draft.id)
    assert excinfo.value.http_status == 409


def test_revision_status_lookup(db_manager, draft) -> None:
    service = _service(db_manager)
    assert service.get_revision_status(9999) == {"status": "not_found"}
    assert service.get_revision_status(draft.id) == {"status": "none"}


def test_fence_stripping_and_diff() -> None:
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences("sin fences") == "sin fences"
    diff = unified_diff("uno\ndos\n", "uno\ntres\n")
    assert "-dos" in diff
    assert "+tres" in diff
    assert unified_diff("igual\n", "igual\n") == ""
