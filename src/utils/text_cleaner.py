from __future__ import annotations

import html as _html
import re
import unicodedata
from typing import Iterable

from bs4 import BeautifulSoup


_BOILERPLATE_PATTERNS: Iterable[re.Pattern] = [
    re.compile(r"^\s*(read more|leer m[aá]s|continuar leyendo)\s*$", re.I),
    re.compile(r"^\s*the post .* appeared first on .*", re.I),
    re.compile(r"^\s*la entrada .* se public[oó] primero en .*", re.I),
]

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_TAG_RE = re.compile(r"<[^>]+>")


def normalize_text(text: str) -> str:
    if not text:
        return ""
    text = _html.unescape(text)
    text = unicodedata.normalize("NFKC", text)
    text = _CONTROL_CHARS.sub("", text)
    text = text.replace("\r", " ").replace("\n", " ").replace("\t", " ")
    return " ".join(text.split()).strip()


def clean_html(html: str) -> str:
    """Texto plano de un fragmento HTML, sin scripts ni pies de feed."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    for node in list(soup.find_all(string=True)):
        if any(p.search(normalize_text(str(node))) for p in _BOILERPLATE_PATTERNS):
            node.extract()
    return normalize_text(soup.get_text(" "))


def strip_tags(html: str) -> str:
    """Versión rápida de clean_html para contenido propio (sin BeautifulSoup)."""
    if not html:
        return ""
    return normalize_text(_TAG_RE.sub(" ", html))


def strip_diacritics(text: str) -> str:
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def truncate_at_word(text: str, limit: int) -> str:
    """Corta en el último espacio antes de ``limit`` y agrega '...'."""
    if not text or len(text) <= limit:
        return text or ""
    cut = text[:limit]
    last_space = cut.rfind(" ")
    if last_space > 0:
        cut = cut[:last_space]
    return cut.rstrip() + "..."


def detect_language_simple(text: str) -> str:
    """Deterministic heuristic EN/ES detector. Returns 'en' or 'es'."""
    if not text:
        return "es"
    t = normalize_text(text).lower()
    es_sw = {"de", "la", "el", "y", "que", "en", "los", "para", "con", "las", "del", "se", "un", "una"}
    en_sw = {"the", "and", "of", "to", "in", "for", "on", "with", "as", "is", "that", "this"}
    es = sum(1 for w in es_sw if re.search(rf"\b{re.escape(w)}\b", t))
    en = sum(1 for w in en_sw if re.search(rf"\b{re.escape(w)}\b", t))
    if es != en:
        return "es" if es > en else "en"
    return "es" if re.search(r"[áéíóúñ¿¡]", t) else "en"
