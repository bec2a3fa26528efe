from datetime import datetime, timedelta, timezone

import pytest

from src.collectors.base_collector import CollectorResult, validate_collector_result
from src.contracts import ScannedArticle
from src.collectors.rss_collector import RSSCollector, RSSMissCache

FEED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>14ymedio</title>
    <link>https://www.14ymedio.com</link>
    <description>Noticias de Cuba</description>
    <item>
      <title>Apagones en La Habana</title>
      <link>https://www.14ymedio.com/cuba/apagones-habana</link>
      <description>&lt;p&gt;La UNE reporta un déficit récord.&lt;/p&gt;</description>
      <pubDate>Mon, 10 Mar 2025 12:00:00 GMT</pubDate>
      <enclosure url="https://cdn.14ymedio.com/foto.jpg" type="image/jpeg" length="1000"/>
    </item>
    <item>
      <title>Entrada sin enlace válido</title>
      <link>ftp://14ymedio.com/archivo</link>
    </item>
  </channel>
</rss>
"""


class FeedResponse:
    def __init__(self, status_code=200, text=FEED_XML):
        self.status_code = status_code
        self.content = text.encode("utf-8")

    def raise_for_status(self):
        pass


class FeedSession:
    """Sirve el mismo feed para cada URL salvo las marcadas como ausentes."""

    def __init__(self, missing=()):
        self.missing = set(missing)
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        if any(host in url for host in self.missing):
            return FeedResponse(404, "")
        return FeedResponse()


@pytest.fixture()
def miss_cache():
    return RSSMissCache(24)


def _collector(session, miss_cache):
    return RSSCollector(session=session, miss_cache=miss_cache, sleep=lambda _s: None)


def test_fetch_feed_builds_scanned_articles(miss_cache) -> None:
    collector = _collector(FeedSession(), miss_cache)

    result = collector.fetch_feed("14ymedio", {"name": "14ymedio", "url": "https://www.14ymedio.com/rss/"})

    assert result.success
    assert validate_collector_result(result)
    assert result.articles_found == 1
    article = result.articles[0]
    assert article.title == "Apagones en La Habana"
    assert article.description == "La UNE reporta un déficit récord."
    assert article.content == article.description
    assert article.medio == "14ymedio"
    assert article.host == "14ymedio.com"
    assert article.origin == "rss"
    assert article.image_url == "https://cdn.14ymedio.com/foto.jpg"
    assert article.published_at == datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_missing_feed_is_cached_and_skipped_next_time(miss_cache) -> None:
    session = FeedSession(missing={"sinfeed.com"})
    source = {"name": "Sin feed", "url": "https://sinfeed.com/rss"}

    first = _collector(session, miss_cache).fetch_feed("sinfeed", source)
    second = _collector(session, miss_cache).fetch_feed("sinfeed", source)

    assert not first.success
    assert "404" in first.error_message
    assert second.success and second.skipped
    assert session.urls == ["https://sinfeed.com/rss"]


def test_miss_cache_expires() -> None:
    cache = RSSMissCache(24)
    stamp = datetime(2025, 3, 10, tzinfo=timezone.utc)
    cache.add("sinfeed.com", stamp)
    assert cache.is_miss("sinfeed.com", stamp + timedelta(hours=23))
    assert not cache.is_miss("sinfeed.com", stamp + timedelta(hours=25))
    assert len(cache) == 0


def test_same_source_is_fetched_once_per_run(miss_cache) -> None:
    session = FeedSession()
    collector = _collector(session, miss_cache)
    source = {"name": "14ymedio", "url": "https://www.14ymedio.com/rss/"}

    collector.fetch_feed("14ymedio", source)
    repeated = collector.fetch_feed("14ymedio", source)
    collector.reset_jobs()
    collector.fetch_feed("14ymedio", source)

    assert repeated.skipped
    assert len(session.urls) == 2


def test_fallback_domains_use_known_feeds_and_discovery(miss_cache) -> None:
    session = FeedSession(missing={"desconocido.org"})
    collector = _collector(session, miss_cache)

    articles = collector.collect_fallback_domains(["techcrunch.com", "desconocido.org"])

    assert len(articles) == 1
    assert "https://techcrunch.com/feed/" in session.urls
    assert "https://desconocido.org/rss" in session.urls
    assert "https://desconocido.org/feed.xml" in session.urls
    assert miss_cache.is_miss("desconocido.org")


def test_cuban_feeds_are_tagged_as_cuba_rss(miss_cache) -> None:
    collector = _collector(FeedSession(), miss_cache)

    articles = collector.collect_cuban_feeds()

    assert articles
    assert {a.origin for a in articles} == {"cuba_rss"}
    assert collector.get_stats()["total_errors"] == 0
    assert collector.is_healthy()


def test_inconsistent_results_are_discarded(miss_cache) -> None:
    class ContradictoryCollector(RSSCollector):
        def collect_from_source(self, source_id, source_config):
            article = ScannedArticle(title="Nota", url="https://example.com/nota")
            return CollectorResult(
                source_id=source_id, success=True, articles=[article], error_message="timeout parcial"
            )

    collector = ContradictoryCollector(session=FeedSession(), miss_cache=miss_cache, sleep=lambda _s: None)

    report = collector.collect_from_multiple_sources({"ejemplo": {"name": "Ejemplo", "url": "https://example.com/rss"}})

    assert report["articles"] == []
    assert collector.get_stats()["total_errors"] == 1
    assert not collector.is_healthy()


def test_reset_jobs_clears_health_stats(miss_cache) -> None:
    collector = _collector(FeedSession(missing={"14ymedio.com"}), miss_cache)
    collector.collect_from_multiple_sources({"14ymedio": {"name": "14ymedio", "url": "https://www.14ymedio.com/rss/"}})
    assert not collector.is_healthy()

    collector.reset_jobs()

    assert collector.is_healthy()
    assert collector.get_stats()["total_sources_processed"] == 0
