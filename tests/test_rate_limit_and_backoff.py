import pytest
import requests

from src.collectors.rate_limit_utils import (
    backoff_delay,
    calculate_effective_delay,
    resolve_domain_override,
)
from src.collectors.rss_collector import RSSCollector, RSSMissCache

CONFIG = {
    "delay_between_requests": 0.5,
    "domain_default_delay": 1.0,
    "domain_overrides": {"newsapi.org": 2.0},
    "backoff_base": 0.5,
    "backoff_max": 3.0,
    "jitter_max": 0.1,
}


class DummyResponse:
    def __init__(self, status_code, text=""):
        self.status_code = status_code
        self._text = text

    @property
    def content(self):
        return self._text.encode("utf-8")

    def raise_for_status(self):
        if 400 <= self.status_code < 600:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class ScriptedSession:
    """Devuelve respuestas (o lanza excepciones) en orden."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def test_backoff_grows_exponentially_and_is_capped() -> None:
    delays = [backoff_delay(attempt, CONFIG) for attempt in range(5)]
    assert 0.5 <= delays[0] <= 0.6
    assert 1.0 <= delays[1] <= 1.1
    assert 2.0 <= delays[2] <= 2.1
    assert delays[3] == 3.0
    assert delays[4] == 3.0


def test_domain_override_checks_www_variants() -> None:
    overrides = {"www.example.com": 4.0}
    assert resolve_domain_override("example.com", overrides) == 4.0
    assert resolve_domain_override("EXAMPLE.com:443", overrides) == 4.0
    assert resolve_domain_override("other.com", overrides) == 0.0
    assert resolve_domain_override("", overrides) == 0.0


@pytest.mark.parametrize(
    "domain, source_delay, expected",
    [("example.com", None, 1.0), ("newsapi.org", None, 2.0), ("example.com", 5.0, 5.0)],
)
def test_effective_delay_takes_the_largest_component(domain, source_delay, expected) -> None:
    assert calculate_effective_delay(domain, source_delay, CONFIG) == expected


def test_rss_retries_retryable_status_with_backoff() -> None:
    sleeps = []
    session = ScriptedSession(DummyResponse(503), DummyResponse(429), DummyResponse(200, "<rss/>"))
    collector = RSSCollector(session=session, miss_cache=RSSMissCache(24), sleep=sleeps.append)

    content, status = collector._fetch_feed("fuente", "https://example.com/feed")

    assert status == 200
    assert content == b"<rss/>"
    assert len(sleeps) == 2
    assert sleeps[1] > sleeps[0]


def test_rss_gives_up_after_max_retries_on_timeouts() -> None:
    sleeps = []
    timeouts = [requests.exceptions.Timeout("lento") for _ in range(10)]
    session = ScriptedSession(*timeouts)
    cache = RSSMissCache(24)
    collector = RSSCollector(session=session, miss_cache=cache, sleep=sleeps.append)

    result = collector.fetch_feed("lento", {"name": "Lento", "url": "https://lento.com/feed"})

    assert not result.success
    assert "Sin respuesta" in result.error_message
    assert len(session.urls) == len(sleeps) + 1
    assert cache.is_miss("lento.com")


def test_rss_applies_domain_delay_between_candidates() -> None:
    sleeps = []
    session = ScriptedSession(DummyResponse(404), DummyResponse(404))
    collector = RSSCollector(session=session, miss_cache=RSSMissCache(24), sleep=sleeps.append)

    collector.fetch_feed(
        "x",
        {"name": "X", "url": "https://x.com/rss", "candidates": ["https://x.com/rss", "https://x.com/feed"]},
    )

    assert session.urls == ["https://x.com/rss", "https://x.com/feed"]
    assert len(sleeps) == 1
    assert 0 < sleeps[0] <= calculate_effective_delay("x.com")
