from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from src.contracts import DraftPayloadModel, ScannedArticle, TopicCandidateModel

from conftest import make_draft_payload, make_topic_payload


def test_scanned_article_normalizes_fields() -> None:
    article = ScannedArticle(
        title="  Apagones en La Habana  ",
        description=None,
        url=" https://www.cibercuba.com/noticias/apagones ",
        published_at="2025-03-10T12:00:00-05:00",
        medio="CiberCuba",
    )

    assert article.title == "Apagones en La Habana"
    assert article.description == ""
    assert article.host == "cibercuba.com"
    assert article.published_at == datetime(2025, 3, 10, 17, 0, tzinfo=timezone.utc)
    assert article.as_source() == {
        "medio": "CiberCuba",
        "titulo": "Apagones en La Habana",
        "url": "https://www.cibercuba.com/noticias/apagones",
        "fecha": "2025-03-10T17:00:00+00:00",
    }


def test_scanned_article_unparseable_date_is_none() -> None:
    article = ScannedArticle(title="Sin fecha", url="https://example.com/a", published_at="ayer por la tarde")
    assert article.published_at is None
    assert article.as_source()["fecha"] is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"url": "ftp://example.com/file"},
        {"title": "   "},
        {"origin": "twitter"},
    ],
)
def test_scanned_article_rejects_invalid_payloads(overrides) -> None:
    payload = {"title": "Titular", "url": "https://example.com/nota", "origin": "rss"}
    payload.update(overrides)
    with pytest.raises(ValidationError):
        ScannedArticle(**payload)


def test_topic_candidate_rounds_impact_and_serializes_sources() -> None:
    payload = make_topic_payload(impacto=72.6, resumen_breve="x" * 800)

    model = TopicCandidateModel(**payload)
    stored = model.model_dump_for_storage()

    assert model.impacto == 73
    assert len(model.resumen_breve) == 500
    assert all(isinstance(source, dict) for source in stored["fuentes_top"])
    assert stored["fuentes_top"][0]["url"] == payload["fuentes_top"][0]["url"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"impacto": 101},
        {"impacto": -1},
        {"confianza": "Altísima"},
        {"titulo_sugerido": ""},
    ],
)
def test_topic_candidate_rejects_out_of_range_values(overrides) -> None:
    payload = make_topic_payload(**overrides)
    with pytest.raises(ValidationError):
        TopicCandidateModel(**payload)


def test_draft_payload_cleans_tags() -> None:
    payload = make_draft_payload(etiquetas="Cuba, apagones , ,UNE")

    model = DraftPayloadModel(**payload)

    assert model.etiquetas == ["Cuba", "apagones", "UNE"]
    assert model.mode == "factual"
    assert model.image_status == make_draft_payload()["image_status"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"mode": "satira"},
        {"generation_type": "programada"},
        {"titulo": ""},
    ],
)
def test_draft_payload_rejects_invalid_values(overrides) -> None:
    payload = make_draft_payload(**overrides)
    with pytest.raises(ValidationError):
        DraftPayloadModel(**payload)
