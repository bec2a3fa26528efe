# src/classification/category_classifier.py
# Clasificador ensemble de categorías para el Redactor IA
# ======================================================

"""
Clasificador híbrido: reglas por sinónimos, similitud de términos contra las
descripciones de cada categoría y, si hay un cliente LLM disponible, una
pregunta cerrada al modelo. Las tres señales se combinan con pesos fijos.

Aquí viven también los dos clasificadores rápidos por palabras clave: el que
se usa al agrupar temas durante el escaneo (``suggest_category``) y el de
respaldo al normalizar borradores (``derive_category``).
"""

from __future__ import annotations

import json
import math
import re
from collections import Counter
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Iterable, Optional, Sequence

from config.sources import TECH_DOMAINS, TREND_DOMAINS
from src.utils.logger import create_module_logger
from src.utils.url_canonicalizer import host_matches

from .categories import (
    ALLOWED_CATEGORIES,
    CATEGORY_DESCRIPTIONS,
    CATEGORY_SYNONYMS,
    ENSEMBLE_WEIGHTS,
    ENSEMBLE_WEIGHTS_NO_LLM,
    GENERAL,
    THRESHOLDS,
)

logger = create_module_logger("category_classifier")

DETAIL_MAX_CHARS = 2000
HINT_CONFIDENCE = 0.45
LLM_CLASSIFIER_TEMPERATURE = 0.1

STOPWORDS = frozenset(
    {
        "el", "la", "de", "que", "y", "a", "en", "un", "ser", "se", "no", "haber",
        "por", "con", "su", "para", "como", "estar", "tener", "le", "lo", "todo",
        "pero", "más", "hacer", "o", "poder", "decir", "este", "ir", "otro", "ese",
        "si", "me", "ya", "ver", "porque", "dar", "cuando", "él", "muy", "sin",
        "vez", "mucho", "saber", "qué", "sobre", "mi", "alguno", "mismo", "yo",
        "también", "hasta", "año", "dos", "querer", "entre", "así", "primero",
    }
)

_NON_WORD_RE = re.compile(r"[^\w\s]")


@dataclass
class CategoryResult:
    category: str
    confidence: float
    low_confidence: bool
    detail: str


@lru_cache(maxsize=None)
def _keyword_pattern(keyword: str) -> re.Pattern:
    return re.compile(rf"(?<!\w){re.escape(keyword.lower())}(?!\w)")


def _count(keyword: str, text: str) -> int:
    return len(_keyword_pattern(keyword).findall(text))


def classify_by_rules(title: str, text: str = "") -> Dict[str, float]:
    """Synonym matches per category, title counted twice, normalised by the max."""
    title_lower = (title or "").lower()
    full = f"{title_lower} {(text or '').lower()}"
    raw: Dict[str, float] = {}
    for category in ALLOWED_CATEGORIES:
        score = 0
        for keyword in CATEGORY_SYNONYMS.get(category, []):
            score += _count(keyword, title_lower) * 2 + _count(keyword, full)
        raw[category] = score
    top = max(max(raw.values()), 1)
    return {category: raw[category] / top for category in ALLOWED_CATEGORIES}


def extract_terms(text: str) -> Counter:
    words = _NON_WORD_RE.sub(" ", (text or "").lower()).split()
    return Counter(word for word in words if len(word) > 2 and word not in STOPWORDS)


def cosine_similarity(left: Counter, right: Counter) -> float:
    dot = sum(count * right.get(term, 0) for term, count in left.items())
    left_norm = math.sqrt(sum(v * v for v in left.values()))
    right_norm = math.sqrt(sum(v * v for v in right.values()))
    if not left_norm or not right_norm:
        return 0.0
    return dot / (left_norm * right_norm)


@lru_cache(maxsize=None)
def _description_terms(category: str) -> Counter:
    return extract_terms(CATEGORY_DESCRIPTIONS.get(category, ""))


def classify_by_similarity(text: str) -> Dict[str, float]:
    query = extract_terms(text)
    return {
        category: cosine_similarity(query, _description_terms(category))
        for category in ALLOWED_CATEGORIES
    }


def _build_llm_prompts(title: str, summary: str, text: str) -> tuple[str, str]:
    allowed = ", ".join(ALLOWED_CATEGORIES)
    system = (
        "Eres un clasificador de noticias. Debes asignar UNA categoría de esta lista "
        f"CERRADA: {allowed}.\n"
        "Reglas estrictas:\n"
        '- Devuelve SOLO JSON: {"categoria":"<UNA_DE_LA_LISTA>"}\n'
        '- Si habla de IA, software, tecnología digital → "Tecnología"\n'
        '- Evita "General" salvo que realmente no haya señales claras\n'
        "- Nunca inventes categorías nuevas"
    )
    user = (
        "Clasifica esta noticia:\n"
        f"TÍTULO: {title}\n"
        f"BAJADA: {summary or 'N/A'}\n"
        f"CONTENIDO (fragmento): {(text or '')[:500]}...\n\n"
        f"Categorías válidas: {allowed}\n"
        'Responde SOLO con JSON: {"categoria":"..."}'
    )
    return system, user


def classify_by_llm(
    title: str,
    text: str,
    llm: Any,
    summary: str = "",
    model: Optional[str] = None,
) -> Dict[str, float]:
    """
    Pregunta al LLM por una categoría de la lista cerrada.

    Una categoría fuera de la lista cuenta como General; un error del cliente
    o una respuesta ilegible no aporta puntos a ninguna categoría.
    """
    from src.generation.llm_client import parse_clean_json

    system, user = _build_llm_prompts(title, summary, text)
    try:
        response = llm.call(
            model=model,
            system=system,
            user=user,
            temperature=LLM_CLASSIFIER_TEMPERATURE,
            json_mode=True,
        )
        suggested = parse_clean_json(response.text).get("categoria")
    except Exception as exc:
        logger.error(f"❌ Error clasificando con LLM: {exc}")
        return {category: 0.0 for category in ALLOWED_CATEGORIES}

    if suggested in ALLOWED_CATEGORIES:
        return {category: 1.0 if category == suggested else 0.0 for category in ALLOWED_CATEGORIES}

    logger.warning(f"⚠️ El LLM devolvió una categoría inválida: {suggested!r}")
    return {category: 1.0 if category == GENERAL else 0.0 for category in ALLOWED_CATEGORIES}


def classify_category(
    title: str = "",
    content: str = "",
    summary: str = "",
    topic_hint: Optional[str] = None,
    use_llm: bool = False,
    llm: Any = None,
    model: Optional[str] = None,
) -> CategoryResult:
    """Combina reglas, similitud y LLM y aplica los umbrales de decisión."""
    body = f"{summary} {content}"
    full_text = f"{title} {body}"

    rules = classify_by_rules(title, body)
    similarity = classify_by_similarity(full_text)
    llm_enabled = bool(use_llm and llm is not None)
    if llm_enabled:
        llm_scores = classify_by_llm(title, content, llm, summary=summary, model=model)
        weights = ENSEMBLE_WEIGHTS
    else:
        llm_scores = {category: 0.0 for category in ALLOWED_CATEGORIES}
        weights = ENSEMBLE_WEIGHTS_NO_LLM

    ensemble = {
        category: rules[category] * weights["rules"]
        + llm_scores[category] * weights["llm"]
        + similarity[category] * weights["similarity"]
        for category in ALLOWED_CATEGORIES
    }

    final_category = GENERAL
    max_score = 0.0
    for category in ALLOWED_CATEGORIES:
        if ensemble[category] > max_score:
            max_score = ensemble[category]
            final_category = category

    confidence = max_score
    low_confidence = False

    if final_category == GENERAL:
        runner_up = max(
            (c for c in ALLOWED_CATEGORIES if c != GENERAL), key=lambda c: ensemble[c]
        )
        if ensemble[runner_up] >= THRESHOLDS["avoid_general"]:
            final_category = runner_up
            confidence = ensemble[runner_up]

    if max_score < THRESHOLDS["low_confidence"]:
        low_confidence = True
        if topic_hint in ALLOWED_CATEGORIES:
            final_category = topic_hint
            confidence = HINT_CONFIDENCE

    detail = {
        "rules": rules,
        "llm": llm_scores,
        "similarity": similarity,
        "ensemble": ensemble,
        "topicHint": topic_hint,
        "usedTopicHint": low_confidence and topic_hint == final_category,
    }
    return CategoryResult(
        category=final_category,
        confidence=round(confidence, 2),
        low_confidence=low_confidence,
        detail=json.dumps(detail, ensure_ascii=False)[:DETAIL_MAX_CHARS],
    )


# Clasificación rápida durante el escaneo
# =======================================

SUGGESTION_KEYWORDS: Dict[str, Dict[str, Any]] = {
    "Tendencia": {
        "weight": 2.0,
        "keywords": [
            "viral", "trending", "tiktok", "instagram", "youtube", "meme", "challenge",
            "influencer", "youtuber", "streamer", "celebridad", "escándalo", "polémica",
            "millones de vistas", "rompe internet", "fenómeno", "boom", "explosión",
            "outage", "caída masiva", "netflix", "spotify", "gaming", "videojuego",
            "trailer", "lanzamiento", "filtrado", "leak", "buzz", "controversia",
        ],
    },
    "Tecnología": {
        "weight": 2.0,
        "keywords": [
            "tecnología", "tech", "ia", "inteligencia artificial", "chatgpt", "openai",
            "bitcoin", "cripto", "criptomoneda", "blockchain", "ethereum", "web3",
            "iphone", "android", "apple", "google", "microsoft", "tesla", "meta",
            "hack", "ciberseguridad", "breach", "vulnerabilidad", "ransomware",
            "startup", "app", "software", "hardware", "cloud", "digital",
        ],
    },
    "Internacional": {
        "weight": 1.0,
        "keywords": ["eeuu", "internacional", "onu", "diplomacia", "relaciones", "mundial", "global"],
    },
    "Economía": {
        "weight": 1.0,
        "keywords": [
            "economía", "dólar", "comercio", "empresa", "inversión", "crisis económica",
            "mercado", "bolsa",
        ],
    },
    "Socio político": {
        "weight": 1.0,
        "keywords": [
            "protestas", "disidentes", "derechos humanos", "represión", "libertad", "activismo",
        ],
    },
    "Política": {
        "weight": 0.7,
        "keywords": [
            "gobierno", "presidente", "política", "elecciones", "partido", "ministro", "congreso",
        ],
    },
}


def category_for_host(host: Optional[str]) -> Optional[str]:
    """Tecnología o Tendencia cuando el dominio pertenece a esas listas."""
    if not host:
        return None
    if host_matches(host, TECH_DOMAINS):
        return "Tecnología"
    if host_matches(host, TREND_DOMAINS):
        return "Tendencia"
    return None


def suggest_category(title: str, summary: str = "", host: Optional[str] = None) -> str:
    forced = category_for_host(host)
    if forced:
        return forced

    text = f"{title or ''} {summary or ''}".lower()
    best, best_score = GENERAL, 0.0
    for category, rule in SUGGESTION_KEYWORDS.items():
        matches = sum(1 for keyword in rule["keywords"] if keyword in text)
        score = matches * rule["weight"]
        if score > best_score:
            best, best_score = category, score
    return best


# Taxonomía de respaldo para borradores
# =====================================

DERIVATION_KEYWORDS: Dict[str, Sequence[str]] = {
    "Política": (
        "gobierno", "ministro", "ministra", "asamblea", "sanciones", "partido", "decreto",
        "ley", "congreso", "senado", "presidente", "elecciones", "voto", "político",
        "política", "dictadura", "democracia", "régimen", "oposición", "autoridades",
        "parlamento",
    ),
    "Economía": (
        "inflación", "salario", "mercado", "precios", "dólar", "remesas", "comercio",
        "económico", "economía", "inversión", "exportación", "importación", "pib",
        "financiero", "banco", "dinero", "crisis económica", "pobreza", "desempleo",
        "turismo", "industria", "producción", "peso", "divisa", "deuda",
    ),
    "Socio político": (
        "protesta", "manifestación", "activista", "movimiento social", "reclamo",
        "cacerolazo", "huelga", "marcha", "sociedad civil", "derechos humanos",
        "disidente", "represión", "libertad", "justicia social", "apagón",
        "salud", "educación", "vivienda", "transporte", "comunidad", "vecinos",
    ),
    "Internacional": (
        "onu", "ee.uu", "eeuu", "estados unidos", "unión europea", "frontera",
        "embajada", "tratado", "guerra", "conflicto", "diplomacia", "exterior",
        "internacional", "mundial", "global", "países", "naciones", "alianza",
        "acuerdo internacional", "cancillería", "relaciones exteriores",
    ),
    "Tecnología": (
        "internet", "ciberseguridad", "inteligencia artificial", "ia", "telecomunicaciones",
        "tecnología", "tecnológico", "digital", "software", "hardware", "app",
        "aplicación", "conectividad", "computadora", "móvil", "celular",
        "innovación", "startup", "plataforma", "datos",
    ),
    "Tendencia": (
        "viral", "redes sociales", "tiktok", "instagram", "youtube", "influencer",
        "meme", "celebridad", "streaming", "videojuego", "festival", "concierto",
        "película", "música",
    ),
}

_CUBA_MARKERS = ("cuba", "cubano", "habana")


def derive_category(title: str = "", summary: str = "", tags: Iterable[str] = ()) -> str:
    text = f"{title or ''} {summary or ''} {' '.join(str(t) for t in tags or [])}".lower()
    scores = {
        category: sum(_count(keyword, text) for keyword in keywords)
        for category, keywords in DERIVATION_KEYWORDS.items()
    }
    category, score = max(scores.items(), key=lambda item: item[1])
    if score > 0:
        logger.debug(f"🏷️ Categoría derivada: {category} (score {score})")
        return category
    if any(marker in text for marker in _CUBA_MARKERS):
        return "Política"
    return GENERAL
