from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import httpx
import openai
import pytest

from config.settings import IMAGE_CONFIG
from src.classification import ALLOWED_CATEGORIES
from src.generation import draft_generator
from src.generation.draft_generator import (
    DraftGenerator,
    GenerationInProgressError,
    choose_category,
    normalize_draft_payload,
    originality,
)
from src.generation.image_service import ImageService
from src.generation.llm_client import LLMError
from src.publishing.draft_publisher import select_cover
from src.stats.stats_service import StatsService

from conftest import FakeImageClient, FakeLLM, make_topic_payload

PARAGRAPH = (
    "La Unión Eléctrica reconoce un déficit de generación que mantiene a La Habana "
    "con cortes de hasta veinte horas diarias. "
)


def _markdown(sections, repeat=8):
    body = " ".join([PARAGRAPH] * repeat)
    return "\n\n".join(f"## {section}\n\n{body}" for section in sections)


ALL_SECTIONS = ["Contexto del hecho", "Causa y consecuencia", "Por qué es importante", "Datos importantes"]


def _response(markdown=None, **overrides):
    response = {
        "titulo": "Apagones prolongados golpean a La Habana",
        "bajada": "La Unión Eléctrica reconoce un déficit de generación de más de 1.500 MW en todo el país.",
        "categoria": "Cuba",
        "etiquetas": ["apagones", "energía", "La Habana"],
        "contenidoMarkdown": markdown if markdown is not None else _markdown(ALL_SECTIONS),
        "verifications": [{"hecho": "Déficit de 1.500 MW", "fuente": "src_0"}],
        "promptsImagen": {"principal": "Calle de La Habana a oscuras", "opcional": ""},
    }
    response.update(overrides)
    return response


def _generator(db_manager, llm, images=None):
    stats = StatsService(db_manager)
    return DraftGenerator(db_manager, llm=llm, image_service=images, stats=stats)


def _llm_costs(db_manager):
    now = datetime.now(timezone.utc)
    usage = db_manager.get_usage_aggregates(now - timedelta(hours=1), now + timedelta(hours=1), "levantatecuba")
    return usage["costs_by_type"].get("llm", {"total": 0.0, "count": 0})


def test_generate_drafts_saves_draft_and_archives_topic(db_manager, topic) -> None:
    llm = FakeLLM([_response()])

    drafts = _generator(db_manager, llm).generate_drafts([topic.id], user="editora")

    assert len(drafts) == 1
    draft = drafts[0]
    assert draft.titulo == "Apagones prolongados golpean a La Habana"
    assert draft.topic_id == topic.id
    assert draft.generation_type == "manual"
    assert draft.generated_by == "editora"
    assert draft.contenido_html.startswith("<h2>Contexto del hecho</h2>")
    assert [f["medio"] for f in draft.fuentes] == ["14ymedio", "CiberCuba"]
    assert draft.prompts_imagen == ["Calle de La Habana a oscuras"]
    assert draft.image_status == "none"
    assert draft.categoria in ALLOWED_CATEGORIES

    metadata = draft.ai_metadata
    assert metadata["model"] == "gpt-4o-mini"
    assert metadata["tokensUsed"] == 1500
    assert metadata["confidence"] == 100
    assert metadata["originalityScore"] == 0.5
    assert metadata["contentOrigin"] == "source_derived"
    assert metadata["structureCorrections"] == []

    assert llm.calls[0]["temperature"] == 0.2
    assert llm.calls[0]["json_mode"] is True
    assert "## Contexto del hecho" in llm.calls[0]["system"]
    assert db_manager.get_topic(topic.id).status == "archived"
    assert _llm_costs(db_manager)["total"] == pytest.approx(0.00045)


def test_short_factual_content_is_expanded(db_manager, topic) -> None:
    short = _markdown(ALL_SECTIONS, repeat=1)
    llm = FakeLLM([_response(short), _response()])

    draft = _generator(db_manager, llm).generate_drafts([topic.id])[0]

    assert len(draft.contenido_markdown) > 3000
    assert draft.ai_metadata["tokensUsed"] == 3000
    assert "demasiado corto" in llm.calls[1]["user"]
    assert draft.generation_type == "auto"


def test_missing_sections_are_autocorrected(db_manager, topic) -> None:
    markdown = _markdown(["Contexto del hecho", "Causa y consecuencia", "Por qué es importante"], repeat=10)
    llm = FakeLLM([_response(markdown)])

    draft = _generator(db_manager, llm).generate_drafts([topic.id])[0]

    assert "## Datos importantes" in draft.contenido_markdown
    assert len(draft.ai_metadata["structureCorrections"]) == 1


def test_rejected_structure_returns_topic_to_pending(db_manager, topic) -> None:
    llm = FakeLLM([_response(_markdown(["Contexto del hecho"], repeat=40))])

    drafts = _generator(db_manager, llm).generate_drafts([topic.id])

    assert drafts == []
    assert db_manager.get_topic(topic.id).status == "pending"
    assert db_manager.list_drafts("levantatecuba") == []


def test_llm_failure_is_logged_as_zero_cost(db_manager, topic) -> None:
    llm = FakeLLM([LLMError("clave inválida", status=401)])

    assert _generator(db_manager, llm).generate_drafts([topic.id]) == []

    assert db_manager.get_topic(topic.id).status == "pending"
    costs = _llm_costs(db_manager)
    assert costs["count"] == 1
    assert costs["total"] == 0.0



def test_non_object_json_skips_only_that_topic(db_manager, topic) -> None:
    second = db_manager.save_topics([make_topic_payload(titulo_sugerido="Escasez de combustible en Santiago de Cuba")])[0]
    llm = FakeLLM(["[1, 2, 3]", _response()])

    drafts = _generator(db_manager, llm).generate_drafts([topic.id, second.id])

    assert [draft.topic_id for draft in drafts] == [second.id]
    assert db_manager.get_topic(topic.id).status == "pending"
    assert db_manager.get_topic(second.id).status == "archived"


def test_unexpected_error_returns_topic_to_pending(db_manager, topic, monkeypatch) -> None:
    second = db_manager.save_topics([make_topic_payload(titulo_sugerido="Escasez de combustible en Santiago de Cuba")])[0]
    original = draft_generator.normalize_draft_payload
    calls = []

    def flaky(topic_obj, response):
        calls.append(topic_obj.id)
        if len(calls) == 1:
            raise AttributeError("respuesta inesperada")
        return original(topic_obj, response)

    monkeypatch.setattr(draft_generator, "normalize_draft_payload", flaky)
    llm = FakeLLM([_response(), _response()])

    drafts = _generator(db_manager, llm).generate_drafts([topic.id, second.id])

    assert [draft.topic_id for draft in drafts] == [second.id]
    assert db_manager.get_topic(topic.id).status == "pending"
    assert not draft_generator._generation_lock("levantatecuba").locked()

def test_missing_topics_are_skipped(db_manager) -> None:
    assert _generator(db_manager, FakeLLM()).generate_drafts([404]) == []


def test_concurrent_generation_is_rejected(db_manager) -> None:
    lock = draft_generator._generation_lock("gen-locked")
    lock.acquire()
    try:
        with pytest.raises(GenerationInProgressError) as excinfo:
            _generator(db_manager, FakeLLM()).generate_drafts([1], tenant_id="gen-locked")
    finally:
        lock.release()
    assert excinfo.value.http_status == 429
    assert excinfo.value.code == "GENERATION_IN_PROGRESS"


def test_cover_image_is_attached_when_enabled(db_manager, topic, monkeypatch) -> None:
    monkeypatch.setitem(IMAGE_CONFIG, "enabled", True)
    image_client = FakeImageClient()
    images = ImageService(client=image_client, stats=StatsService(db_manager), config=IMAGE_CONFIG)

    draft = _generator(db_manager, FakeLLM([_response()]), images).generate_drafts([topic.id])[0]

    assert draft.cover_image_url == "https://cdn.example.com/cover.png"
    assert draft.image_status == "ready"
    assert draft.image_kind == "ai"
    assert image_client.calls[0]["prompt"] == "Calle de La Habana a oscuras"
    assert image_client.calls[0]["model"] == "dall-e-3"


def test_image_failure_keeps_the_draft(db_manager, monkeypatch) -> None:
    monkeypatch.setitem(IMAGE_CONFIG, "enabled", True)
    error = openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/images"))
    images = ImageService(client=FakeImageClient(error=error), stats=StatsService(db_manager), config=IMAGE_CONFIG)

    topic = db_manager.save_topics([make_topic_payload(image_url="https://www.14ymedio.com/foto.jpg")])[0]

    draft = _generator(db_manager, FakeLLM([_response()]), images).generate_drafts([topic.id])[0]

    assert draft.image_status == "error"
    assert draft.cover_image_url is None
    assert draft.ai_metadata["sourceImageUrl"] == "https://www.14ymedio.com/foto.jpg"
    assert select_cover(draft) == "https://www.14ymedio.com/foto.jpg"


def test_normalize_fills_missing_fields_from_topic() -> None:
    topic = SimpleNamespace(titulo_sugerido="Apagones en La Habana", categoria_sugerida="Cuba")

    norm = normalize_draft_payload(
        topic, {"titulo": "  ", "etiquetas": ["uno", 3, " ", "dos"], "bajada": None, "verifications": "no"}
    )

    assert norm["titulo"] == "Apagones en La Habana"
    assert norm["categoria"] == "Cuba"
    assert norm["etiquetas"] == ["uno", "dos"]
    assert norm["bajada"] == ""
    assert norm["verifications"] == []
    assert norm["promptsImagen"] == ["Editorial news cover sobre: Apagones en La Habana"]


def test_normalize_without_any_title_raises() -> None:
    with pytest.raises(ValueError):
        normalize_draft_payload(SimpleNamespace(titulo_sugerido=""), {})


def test_normalize_derives_missing_category() -> None:
    topic = SimpleNamespace(titulo_sugerido="", categoria_sugerida="")
    norm = normalize_draft_payload(topic, {"titulo": "Nuevo iPhone con inteligencia artificial"})
    assert norm["categoria"] in ALLOWED_CATEGORIES


@pytest.mark.parametrize(
    "llm_category, ensemble_category, confidence, expected",
    [
        ("General", "Cuba", 0.60, "Cuba"),
        ("General", "Cuba", 0.50, "General"),
        ("Economía", "Cuba", 0.75, "Cuba"),
        ("Economía", "Cuba", 0.60, "Economía"),
        ("", "Cuba", 0.10, "Cuba"),
    ],
)
def test_choose_category(llm_category, ensemble_category, confidence, expected) -> None:
    assert choose_category(llm_category, ensemble_category, confidence) == expected


@pytest.mark.parametrize(
    "verifications, content_len, tags, expected",
    [
        (3, 600, 3, (0.7, "ai_synthesized")),
        (3, 600, 1, (0.6, "ai_synthesized")),
        (0, 600, 3, (0.5, "source_derived")),
        (0, 100, 0, (0.4, "source_derived")),
    ],
)
def test_originality(verifications, content_len, tags, expected) -> None:
    norm = {
        "verifications": [{}] * verifications,
        "contenidoMarkdown": "x" * content_len,
        "etiquetas": ["t"] * tags,
    }
    assert originality(norm) == expected
