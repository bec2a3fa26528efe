from __future__ import annotations

import string
from urllib.parse import urlparse

from hypothesis import given, settings
from hypothesis import strategies as st

from src.utils.text_cleaner import clean_html, normalize_text
from src.utils.similarity import are_duplicates, jaccard_similarity, normalize_for_similarity
from src.utils.url_canonicalizer import canonical_url, host_of, normalize_host


TEXT_STRATEGY = st.text(alphabet=st.characters(blacklist_categories=("Cs",)))


@given(TEXT_STRATEGY)
@settings(max_examples=150)
def test_normalize_text_strips_controls_and_is_idempotent(raw: str) -> None:
    normalized = normalize_text(raw)
    assert normalize_text(normalized) == normalized
    assert normalized == normalized.strip()
    for forbidden in ("\n", "\r", "\x00"):
        assert forbidden not in normalized


@given(
    st.lists(
        st.text(
            alphabet=string.ascii_letters + string.digits,
            min_size=1,
            max_size=10,
        ),
        min_size=1,
        max_size=6,
    ),
    st.sampled_from([" ", "\n", "\t", "\r", "  \n"]),
)
@settings(max_examples=75)
def test_normalize_text_collapses_whitespace(parts: list[str], spacer: str) -> None:
    raw = spacer.join(parts)
    normalized = normalize_text(raw)
    assert "  " not in normalized
    assert "\n" not in normalized
    assert normalized.split(" ") == normalize_text(" ".join(parts)).split(" ")


@st.composite
def html_fragments(draw) -> str:
    words = draw(st.lists(st.text(min_size=1, max_size=10), min_size=1, max_size=5))
    boilerplate = draw(st.sampled_from([
        "Read More",
        "Leer más",
        "Continue Reading",
        "The post Foo appeared first on Bar",
    ]))
    script_body = draw(st.text(min_size=0, max_size=20))
    wrapper = draw(st.sampled_from(["div", "span", "article", "section"]))
    body = " ".join(words)
    return (
        f"<html><head><script>{script_body}</script><style>.x{{color:red}}</style></head>"
        f"<body><{wrapper}>{body}</{wrapper}><p>{boilerplate}</p></body></html>"
    )


@given(html_fragments())
@settings(max_examples=60)
def test_clean_html_removes_boilerplate_and_scripts(payload: str) -> None:
    cleaned = clean_html(payload)
    assert "script" not in cleaned.lower()
    assert "style" not in cleaned.lower()
    assert "read more" not in cleaned.lower()
    assert cleaned == normalize_text(cleaned)


SEGMENT_CHARS = string.ascii_letters + string.digits + "-_"


@st.composite
def article_urls(draw) -> str:
    scheme = draw(st.sampled_from(["http", "https", "HTTPS"]))
    prefix = draw(st.sampled_from(["", "www.", "WWW."]))
    domain = draw(st.text(alphabet=string.ascii_lowercase, min_size=3, max_size=12))
    suffix = draw(st.sampled_from(["com", "org", "cu", "news"]))
    segments = draw(
        st.lists(st.text(alphabet=SEGMENT_CHARS, min_size=1, max_size=8), max_size=4)
    )
    url = f"{scheme}://{prefix}{domain}.{suffix}/" + "/".join(segments)
    if draw(st.booleans()):
        url += "?utm_source=" + draw(st.text(alphabet=SEGMENT_CHARS, max_size=6))
    if draw(st.booleans()):
        url += "#" + draw(st.text(alphabet=SEGMENT_CHARS, max_size=6))
    return url


@given(article_urls())
@settings(max_examples=120)
def test_canonical_url_is_idempotent_and_lowercase(raw: str) -> None:
    canonical = canonical_url(raw)
    assert canonical_url(canonical) == canonical
    assert canonical == canonical.lower()
    parsed = urlparse(canonical)
    assert parsed.query == ""
    assert parsed.fragment == ""


@given(article_urls())
@settings(max_examples=120)
def test_host_helpers_agree(raw: str) -> None:
    host = host_of(raw)
    assert host
    assert host == host.lower()
    assert normalize_host(raw) == host


TITLE_STRATEGY = st.text(alphabet=string.ascii_letters + " áéíóúñ,.", max_size=60)


@given(TITLE_STRATEGY)
@settings(max_examples=100)
def test_title_is_always_duplicate_of_itself(title: str) -> None:
    assert are_duplicates(title, title).is_duplicate


@given(TITLE_STRATEGY, TITLE_STRATEGY)
@settings(max_examples=100)
def test_jaccard_is_symmetric_and_bounded(first: str, second: str) -> None:
    score = jaccard_similarity(first, second)
    assert score == jaccard_similarity(second, first)
    assert 0.0 <= score <= 1.0
    assert normalize_for_similarity(first) == normalize_for_similarity(normalize_for_similarity(first))
