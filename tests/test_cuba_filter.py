from src.contracts import ScannedArticle
from src.scanner.cuba_filter import (
    StrictCubaFilter,
    get_cuba_strict_query,
    has_cuba_entity,
    is_obvious_noise,
    url_has_cuba_path,
)


def _article(url: str, title: str, **extra) -> ScannedArticle:
    return ScannedArticle(url=url, title=title, **extra)


def test_bypass_hosts_pass_without_keywords() -> None:
    decision = StrictCubaFilter().evaluate(_article("https://www.14ymedio.com/x/y", "Receta de flan"))
    assert decision.passed
    assert decision.reason == "bypass_domain"


def test_excluded_hosts_never_pass() -> None:
    decision = StrictCubaFilter().evaluate(
        _article("https://www.cubadebate.cu/noticias/cuba", "Cuba avanza")
    )
    assert not decision.passed
    assert decision.reason == "excluded_host"


def test_mixed_cuban_outlets_need_a_match() -> None:
    cuba_filter = StrictCubaFilter()
    without = cuba_filter.evaluate(_article("https://prensa-latina.cu/2025/03/10/nota", "Cumbre en Asia"))
    with_kw = cuba_filter.evaluate(
        _article("https://prensa-latina.cu/2025/03/10/otra", "Cuba firma acuerdo con Vietnam")
    )
    assert not without.passed and without.reason == "cuban_outlet_without_keywords"
    assert with_kw.passed and with_kw.reason == "keyword_match"


def test_generic_hosts_pass_on_keywords_path_or_entities() -> None:
    cuba_filter = StrictCubaFilter()
    keyword = cuba_filter.evaluate(_article("https://www.bbc.com/news/1", "Remesas hacia la isla caen"))
    path = cuba_filter.evaluate(_article("https://www.nytimes.com/economia/rates", "Tasa de interés"))
    entity = cuba_filter.evaluate(
        _article(
            "https://www.reuters.com/travel/x",
            "Tourism numbers rise",
            entities=[{"text": "Havana", "label": "GPE"}],
        )
    )
    assert (keyword.reason, path.reason, entity.reason) == ("keyword_match", "url_path", "ner_match")
    assert keyword.passed and path.passed and entity.passed


def test_generic_hosts_without_signal_are_rejected() -> None:
    decision = StrictCubaFilter().evaluate(_article("https://www.bbc.com/news/world-1", "Guerra en Ucrania"))
    assert not decision.passed
    assert decision.reason == "no_cuba_keywords"


def test_global_noise_is_rejected_even_with_path_match() -> None:
    decision = StrictCubaFilter().evaluate(
        _article("https://www.bbc.com/politica/israel-gaza", "Israel y Gaza")
    )
    assert not decision.passed
    assert decision.reason == "noise"


def test_noise_check_yields_to_cuba_mentions() -> None:
    assert is_obvious_noise({"title": "Bitcoin se dispara", "url": "https://x.com/a"})
    assert not is_obvious_noise({"title": "Bitcoin gana terreno en Cuba", "url": "https://x.com/a"})


def test_helpers() -> None:
    assert url_has_cuba_path("https://a.com/cuba/nota")
    assert not url_has_cuba_path(None)
    assert has_cuba_entity([{"name": "Cuba", "type": "LOCATION"}])
    assert not has_cuba_entity([{"text": "Cuba", "label": "ORG"}])
    assert "Havana" in get_cuba_strict_query()


def test_filter_counts_decisions() -> None:
    cuba_filter = StrictCubaFilter()
    articles = [
        _article("https://www.14ymedio.com/a", "Uno"),
        _article("https://www.bbc.com/news/2", "Guerra en Ucrania"),
        _article("https://www.bbc.com/news/3", "Apagones en La Habana"),
    ]

    kept = cuba_filter.filter(articles)

    assert [a.url for a in kept] == ["https://www.14ymedio.com/a", "https://www.bbc.com/news/3"]
    assert cuba_filter.stats() == {"bypass_domain": 1, "no_cuba_keywords": 1, "keyword_match": 1}
