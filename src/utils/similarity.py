"""Title similarity and deduplication for scanned topics.

A pair of titles is a duplicate when ANY of the three measures reaches its
threshold, checked in order: cosine (term frequency), normalized
Levenshtein and Jaccard over token sets.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from src.utils.logger import create_module_logger
from src.utils.text_cleaner import strip_diacritics

logger = create_module_logger("similarity")

DEFAULT_THRESHOLDS: Dict[str, float] = {
    "cosine": 0.70,
    "levenshtein": 0.60,
    "jaccard": 0.65,
}

SPANISH_STOPWORDS = frozenset(
    """
    de la que el en y a los del se las por un para con no una su al lo como mas pero
    sus le ya o este si porque esta entre cuando muy sin sobre tambien me hasta hay
    donde quien desde todo nos durante todos uno les ni contra otros ese eso ante ellos
    e esto mi antes algunos que unos yo otro otras otra el tanto esa estos mucho quienes
    nada muchos cual poco ella estar estas algunas algo nosotros mis tu te ti tus ellas
    esos esas estoy estas esta estamos estan estaba estaban estuvo estado he has ha
    hemos han haya habia habian hubo soy eres es somos son sea sean sera seran seria
    era eran fui fue fueron siendo sido tengo tiene tenemos tienen tenia tuvo
    """.split()
)

ENGLISH_STOPWORDS = frozenset(
    """
    the a an and or but in on at to for of with by from as is was are were been be
    have has had do does did will would could should may might must shall can need
    it its this that these those i you he she we they what which who whom whose where
    when why how all each every both few more most other some such no nor not only own
    same so than too very just also
    """.split()
)

ALL_STOPWORDS = SPANISH_STOPWORDS | ENGLISH_STOPWORDS

_PUNCT_RE = re.compile(r"[^\w\s]")


def normalize_for_similarity(text: Optional[str]) -> str:
    if not text:
        return ""
    plain = _PUNCT_RE.sub(" ", strip_diacritics(text.lower()))
    words = [w for w in plain.split() if len(w) > 1 and w not in ALL_STOPWORDS]
    return " ".join(words)


def tokenize(text: Optional[str]) -> set[str]:
    return set(normalize_for_similarity(text).split())


def jaccard_similarity(a: str, b: str) -> float:
    first, second = tokenize(a), tokenize(b)
    if not first and not second:
        return 1.0
    if not first or not second:
        return 0.0
    return len(first & second) / len(first | second)


def cosine_similarity(a: str, b: str) -> float:
    tf_a = Counter(normalize_for_similarity(a).split())
    tf_b = Counter(normalize_for_similarity(b).split())
    if not tf_a and not tf_b:
        return 1.0
    if not tf_a or not tf_b:
        return 0.0
    dot = sum(tf_a[t] * tf_b.get(t, 0) for t in tf_a)
    norm_a = math.sqrt(sum(v * v for v in tf_a.values()))
    norm_b = math.sqrt(sum(v * v for v in tf_b.values()))
    return dot / (norm_a * norm_b)


def levenshtein_distance(a: str, b: str) -> int:
    s1, s2 = normalize_for_similarity(a), normalize_for_similarity(b)
    if s1 == s2:
        return 0
    if not s1:
        return len(s2)
    if not s2:
        return len(s1)
    previous = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        current = [i] + [0] * len(s2)
        for j, c2 in enumerate(s2, start=1):
            cost = 0 if c1 == c2 else 1
            current[j] = min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost)
        previous = current
    return previous[-1]


def levenshtein_similarity(a: str, b: str) -> float:
    s1, s2 = normalize_for_similarity(a), normalize_for_similarity(b)
    if s1 == s2:
        return 1.0
    longest = max(len(s1), len(s2))
    return 1.0 - levenshtein_distance(a, b) / longest


@dataclass(frozen=True)
class DuplicateCheck:
    is_duplicate: bool
    scores: Dict[str, float]
    matched_by: Optional[str] = None


def are_duplicates(
    a: str, b: str, thresholds: Optional[Mapping[str, float]] = None
) -> DuplicateCheck:
    limits = {**DEFAULT_THRESHOLDS, **(thresholds or {})}
    scores = {
        "cosine": cosine_similarity(a, b),
        "levenshtein": levenshtein_similarity(a, b),
        "jaccard": jaccard_similarity(a, b),
    }
    for measure in ("cosine", "levenshtein", "jaccard"):
        if scores[measure] >= limits[measure]:
            return DuplicateCheck(True, scores, measure)
    return DuplicateCheck(False, scores, None)


@dataclass
class DedupResult:
    unique: List[Any]
    duplicates_skipped: int = 0
    details: List[Dict[str, Any]] = field(default_factory=list)


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(name, default)
    return getattr(item, name, default)


def deduplicate_by_title(
    items: Sequence[Any],
    title_field: str = "titulo_sugerido",
    impact_field: str = "impacto",
) -> DedupResult:
    """
    Keep one item per group of similar titles.

    When a later item duplicates an accepted one, the one with the higher
    impact wins and takes the earlier item's position.
    """
    result = DedupResult(unique=[])
    for item in items or []:
        title = _field(item, title_field) or ""
        impact = _field(item, impact_field) or 0
        for index, kept in enumerate(result.unique):
            check = are_duplicates(title, _field(kept, title_field) or "")
            if not check.is_duplicate:
                continue
            kept_impact = _field(kept, impact_field) or 0
            if impact > kept_impact:
                logger.debug(f"🔄 Reemplazando duplicado ({impact} > {kept_impact}): {title[:60]}")
                result.details.append(
                    {"skipped": _field(kept, title_field), "kept": title, "matched_by": check.matched_by}
                )
                result.unique[index] = item
            else:
                result.details.append(
                    {"skipped": title, "kept": _field(kept, title_field), "matched_by": check.matched_by}
                )
            result.duplicates_skipped += 1
            break
        else:
            result.unique.append(item)
    return result


def check_against_existing(title: str, existing_titles: Iterable[str]) -> Optional[DuplicateCheck]:
    """First duplicate match of ``title`` among stored titles, or None."""
    for existing in existing_titles:
        check = are_duplicates(title, existing)
        if check.is_duplicate:
            return check
    return None


__all__ = [
    "ALL_STOPWORDS",
    "DEFAULT_THRESHOLDS",
    "DedupResult",
    "DuplicateCheck",
    "are_duplicates",
    "check_against_existing",
    "cosine_similarity",
    "deduplicate_by_title",
    "jaccard_similarity",
    "levenshtein_distance",
    "levenshtein_similarity",
    "normalize_for_similarity",
]
