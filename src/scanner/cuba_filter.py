"""Strict Cuba relevance filter.

Used when ``strict_cuba`` is on. Cuban independent outlets pass by domain,
mixed Cuban outlets must mention Cuba explicitly, and every other host
passes only on a keyword, entity or URL-path match that is not global noise.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from src.contracts import ScannedArticle
from src.utils.logger import create_module_logger
from src.utils.text_cleaner import strip_diacritics
from src.utils.url_canonicalizer import host_of

logger = create_module_logger("cuba_filter")

CUBA_POSITIVE_KEYWORDS = [
    # País y gentilicios
    "cuba", "cubano", "cubana", "cubanos", "cubanas", "cuban", "cubans",
    # Capital y provincias
    "havana", "la habana", "habana",
    "matanzas", "pinar del rio", "mayabeque", "artemisa", "isla de la juventud",
    "villa clara", "cienfuegos", "sancti spiritus", "camaguey", "las tunas",
    "holguin", "granma", "santiago de cuba", "guantanamo", "ciego de avila",
    "santiago", "oriente",
    # Gobierno
    "diaz canel", "diaz-canel", "dias canel",
    "fidel castro", "raul castro",
    "minrex", "minsap", "minint", "gaceta oficial",
    "gobierno cubano", "autoridades cubanas", "regimen cubano",
    # Economía
    "bloqueo", "embargo", "sanciones", "remesas",
    "mipyme", "mipymes", "tarea ordenamiento",
    "peso cubano", "cup", "mlc", "moneda nacional",
    "mercado cambiario", "tipo de cambio", "dolar cuba",
    "inflacion", "inflacion cubana", "crisis economica",
    "reforma economica", "economia cubana", "economic crisis cuba",
    "escasez", "desabastecimiento", "apagon", "apagones",
    "combustible", "gasolina cuba", "energia cuba",
    "gaesa", "etecsa", "empresas cubanas",
    # Migración y diáspora
    "migrantes cubanos", "balseros", "florida straits", "estrecho de florida",
    "miami cuban", "exilio cubano", "comunidad cubana",
    "ley de ajuste cubano", "parole humanitario",
    # Sociedad y derechos
    "disidencia cubana", "derechos humanos cuba", "presos politicos",
    "libertad de expresion cuba", "manifestaciones cuba",
    "represion cuba",
]

NOISE_KEYWORDS = [
    "israel", "gaza", "ukraine", "ucrania", "russia", "rusia",
    "nfl", "nba", "mlb", "bitcoin", "ethereum", "grok",
]

EXCLUDED_HOSTS = frozenset({"cubadebate.cu"})

HARD_CU_BYPASS = frozenset(
    {
        "14ymedio.com",
        "diariodecuba.com",
        "cibercuba.com",
        "cubanet.org",
        "martinoticias.com",
        "adncuba.com",
        "ddcuba.com",
        "cubanosporelmundo.com",
        "eltoque.com",
        "eltoque.news",
        "eltoque.org",
    }
)

CU_REQUIRE_POS = frozenset(
    {
        "prensa-latina.cu",
        "prensalatina.cu",
        "oncubamagazine.com",
        "radiohc.cu",
    }
)

_URL_PATH_RE = re.compile(r"/(cuba|economia|migracion|sociedad|politica)/", re.IGNORECASE)
_CUBA_ENTITY_RE = re.compile(r"cuba|havana")
_LOCATION_LABEL_RE = re.compile(r"GPE|LOC|LOCATION|PLACE")

STRICT_QUERY = "Cuba OR cubano OR cubana OR Havana OR Cuban"


def get_cuba_strict_query() -> str:
    """NewsAPI query for strict mode (NewsAPI handles nested parentheses poorly)."""
    return STRICT_QUERY


def _get(article: Any, name: str) -> Any:
    if isinstance(article, Mapping):
        return article.get(name)
    return getattr(article, name, None)


def concat_text(article: Any) -> str:
    """Title, description, content and URL, lower-cased and without accents."""
    raw = " ".join(
        str(_get(article, name) or "") for name in ("title", "description", "content", "url")
    )
    return strip_diacritics(raw.lower())


def has_positive_match(text: str) -> bool:
    return any(keyword in text for keyword in CUBA_POSITIVE_KEYWORDS)


def is_obvious_noise(article: Any) -> bool:
    """Global noise in title/description, unless the text mentions Cuba."""
    if has_positive_match(concat_text(article)):
        return False
    short = strip_diacritics(
        f"{_get(article, 'title') or ''} {_get(article, 'description') or ''}".lower()
    )
    return any(noise in short for noise in NOISE_KEYWORDS)


def url_has_cuba_path(url: Optional[str]) -> bool:
    return bool(url) and _URL_PATH_RE.search(url) is not None


def has_cuba_entity(entities: Optional[Iterable[Mapping[str, Any]]]) -> bool:
    for entity in entities or []:
        text = strip_diacritics(str(entity.get("text") or entity.get("name") or "").lower())
        label = str(entity.get("type") or entity.get("label") or "").upper()
        if _CUBA_ENTITY_RE.search(text) and _LOCATION_LABEL_RE.search(label):
            return True
    return False


@dataclass(frozen=True)
class FilterDecision:
    passed: bool
    reason: str


class StrictCubaFilter:
    """
    Evaluates articles in order: exclusion list, bypass hosts, mixed Cuban
    hosts, everyone else. Counts decisions per reason for the scan log.
    """

    def __init__(self):
        self._counts: Counter = Counter()

    def evaluate(self, article: ScannedArticle | Mapping[str, Any]) -> FilterDecision:
        host = (_get(article, "host") or host_of(_get(article, "url") or "")).lower()
        if host.startswith("www."):
            host = host[4:]

        if host in EXCLUDED_HOSTS:
            return self._record(False, "excluded_host")

        if host in HARD_CU_BYPASS:
            return self._record(True, "bypass_domain")

        text_match = has_positive_match(concat_text(article))
        entity_match = has_cuba_entity(_get(article, "entities"))
        path_match = url_has_cuba_path(_get(article, "url"))
        matched = text_match or entity_match or path_match

        if host in CU_REQUIRE_POS:
            if matched:
                return self._record(True, self._match_reason(text_match, path_match))
            return self._record(False, "cuban_outlet_without_keywords")

        if matched:
            if is_obvious_noise(article):
                return self._record(False, "noise")
            return self._record(True, self._match_reason(text_match, path_match))

        return self._record(False, "no_cuba_keywords")

    def filter(self, articles: Sequence[ScannedArticle]) -> List[ScannedArticle]:
        kept = [article for article in articles if self.evaluate(article).passed]
        logger.info(
            f"🇨🇺 Filtro Cuba estricto: {len(articles)} → {len(kept)} | {dict(self._counts)}"
        )
        if articles and not kept:
            logger.warning(
                "⚠️ El filtro estricto rechazó todos los artículos; revisar allowlist y ventana de frescura"
            )
        return kept

    def stats(self) -> Dict[str, int]:
        return dict(self._counts)

    @staticmethod
    def _match_reason(text_match: bool, path_match: bool) -> str:
        if text_match:
            return "keyword_match"
        if path_match:
            return "url_path"
        return "ner_match"

    def _record(self, passed: bool, reason: str) -> FilterDecision:
        self._counts[reason] += 1
        return FilterDecision(passed, reason)
