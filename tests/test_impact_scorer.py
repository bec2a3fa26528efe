from datetime import timedelta

import pytest
from loguru import logger

from src.scoring import impact_scorer
from src.scoring.impact_scorer import DEFAULT_WEIGHTS, ImpactScorer

from conftest import FIXED_NOW


def _source(medio: str, url: str, hours_ago: float = 0):
    return {"medio": medio, "url": url, "published_at": FIXED_NOW - timedelta(hours=hours_ago)}


CUBAN_SOURCES = [
    _source("14ymedio", "https://www.14ymedio.com/cuba/apagones"),
    _source("CiberCuba", "https://www.cibercuba.com/noticias/apagones"),
    _source("Diario de Cuba", "https://diariodecuba.com/cuba/apagones.html"),
]


@pytest.mark.parametrize("count, expected", [(0, 0), (1, 20), (3, 60), (5, 100), (9, 100)])
def test_consensus_caps_at_five_sources(count, expected) -> None:
    assert impact_scorer.calculate_consensus(count) == expected


def test_recency_is_full_for_fresh_and_zero_for_old_or_undated() -> None:
    assert impact_scorer.calculate_recency([_source("BBC", "https://bbc.com/a")], FIXED_NOW) == 100
    week_old = _source("BBC", "https://bbc.com/a", hours_ago=8 * 24)
    assert impact_scorer.calculate_recency([week_old], FIXED_NOW) == 0
    assert impact_scorer.calculate_recency([{"medio": "BBC"}], FIXED_NOW) == 0
    assert impact_scorer.calculate_recency([], FIXED_NOW) == 0


def test_authority_uses_first_partial_match() -> None:
    sources = [{"medio": "BBC Mundo"}, {"medio": "Blog desconocido"}]
    expected = round((95 + impact_scorer.UNKNOWN_AUTHORITY) / 2)
    assert impact_scorer.calculate_authority(sources) == expected


def test_trend_measures_publication_velocity() -> None:
    close = [_source("A", "https://a.com/1", 0), _source("B", "https://b.com/1", 1)]
    spread = [_source("A", "https://a.com/1", 0), _source("B", "https://b.com/1", 10)]
    assert impact_scorer.calculate_trend(close) == 100
    assert impact_scorer.calculate_trend(spread) == 20
    assert impact_scorer.calculate_trend(close[:1]) == 50


def test_trend_keywords_reward_tech_and_penalize_politics() -> None:
    assert impact_scorer.calculate_trend_keywords("Nuevo iPhone con IA") == 40
    assert impact_scorer.calculate_trend_keywords("El presidente habla de IA") == 5
    assert impact_scorer.calculate_trend_keywords("Elecciones y decreto del gobierno") == 0


def test_short_trend_keywords_only_match_whole_words() -> None:
    assert impact_scorer.calculate_trend_keywords("Diario exitoso") == 0


def test_cuba_relevance_and_novelty() -> None:
    assert impact_scorer.calculate_cuba_relevance("Apagones en La Habana") == 20
    assert impact_scorer.calculate_cuba_relevance("Resultados de la NBA") == 0
    assert impact_scorer.calculate_novelty("Calor récord, un hecho histórico") == 70
    assert impact_scorer.calculate_novelty("") == 50


def test_confidence_levels() -> None:
    assert impact_scorer.determine_confidence(CUBAN_SOURCES, 60, FIXED_NOW) == "Alta"
    assert impact_scorer.determine_confidence(CUBAN_SOURCES[:2], 40, FIXED_NOW) == "Media"
    assert impact_scorer.determine_confidence(CUBAN_SOURCES[:1], 20, FIXED_NOW) == "Baja"


def test_confidence_requires_sources_within_48_hours() -> None:
    sources = CUBAN_SOURCES[:2] + [_source("BBC", "https://bbc.com/cuba", hours_ago=72)]
    assert impact_scorer.determine_confidence(sources, 60, FIXED_NOW) == "Media"


def test_cuba_boost() -> None:
    assert impact_scorer.apply_cuba_boost(50, "Apagones en La Habana") == 90
    assert impact_scorer.apply_cuba_boost(50, "Cuba y Estados Unidos negocian") == 100
    assert impact_scorer.apply_cuba_boost(30, "Cuba en la ONU", category="Internacional") == 80
    assert impact_scorer.apply_cuba_boost(30, "Nuevo iPhone") == 30
    assert impact_scorer.apply_cuba_boost(30, "Titular", url="https://x.com/cuba/nota") == 70


def test_final_score_halves_without_freshness() -> None:
    assert impact_scorer.final_score(80, 1.0) == 80
    assert impact_scorer.final_score(80, 0.0) == 40
    assert impact_scorer.final_score(80, 3.0) == 80


def test_weights_are_normalized_when_they_do_not_sum_to_one() -> None:
    messages = []
    sink_id = logger.add(lambda message: messages.append(message.record), level="WARNING")
    try:
        scorer = ImpactScorer({name: 1.0 for name in DEFAULT_WEIGHTS})
    finally:
        logger.remove(sink_id)

    assert messages[0]["extra"]["module"] == "impact"
    assert "Normalizando" in messages[0]["message"]
    assert sum(scorer.weights.values()) == pytest.approx(1.0)
    assert scorer.weights["recencia"] == pytest.approx(1 / 6)


def test_score_topic_combines_metrics() -> None:
    topic = {
        "title": "Apagones en La Habana",
        "description": "",
        "content": "",
        "sources": CUBAN_SOURCES,
    }

    result = ImpactScorer(dict(DEFAULT_WEIGHTS)).score_topic(topic, FIXED_NOW)

    assert result.metrics["recencia"] == 100
    assert result.metrics["consenso"] == 60
    assert result.metrics["autoridad"] == 80
    assert result.metrics["tendencia"] == 100
    assert result.metrics["relevanciaCuba"] == 20
    assert result.metrics["novedad"] == 50
    assert result.metrics["trendScore"] == 0
    assert result.score == 68
    assert result.confidence == "Alta"
