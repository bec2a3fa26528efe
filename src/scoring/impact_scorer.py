# src/scoring/impact_scorer.py
# Score de impacto de temas del Redactor IA
# =========================================

"""
Decide qué temas merecen un borrador.

Cada tema recibe seis métricas de 0 a 100 (recencia, consenso, autoridad,
tendencia, relevancia para Cuba y novedad) que se combinan con pesos
configurables. Sobre esa base se suma un empuje por palabras de tendencia
no política, y el escáner aplica después el boost de Cuba y la frescura.

El resultado es explicable: ``ImpactResult.metrics`` guarda cada métrica
tal como se persiste en ``AiTopic.metadata``.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from config.settings import SCORING_CONFIG
from config.sources import AUTHORITY_MAP
from src.utils.datetime_utils import hours_between, parse_to_utc, utc_now
from src.utils.logger import create_module_logger
from src.utils.url_canonicalizer import host_of

logger = create_module_logger("impact")

DEFAULT_WEIGHTS: Dict[str, float] = {
    "recencia": 0.20,
    "consenso": 0.15,
    "autoridad": 0.15,
    "tendencia": 0.15,
    "relevanciaCuba": 0.20,
    "novedad": 0.15,
}

MAX_RECENCY_HOURS = 7 * 24
UNKNOWN_AUTHORITY = SCORING_CONFIG.get("unknown_authority", 60)
TREND_KEYWORD_WEIGHT = SCORING_CONFIG.get("trend_keyword_weight", 0.30)

CUBA_RELEVANCE_KEYWORDS = [
    "cuba", "cubano", "cubana", "la habana", "díaz-canel",
    "economía cubana", "política cubana", "disidente", "disidencia",
    "derechos humanos", "bloqueo", "embargo", "reforma",
    "miguel díaz-canel", "raúl castro", "fidel castro",
    "régimen cubano", "gobierno cubano", "protestas",
    "libertad", "represión", "sanciones",
]

NOVELTY_KEYWORDS = [
    "nuevo", "primera vez", "histórico", "inédito", "récord",
    "nunca antes", "sorprendente", "inesperado", "exclusiva",
]

# Temas virales / tecnología que empujan el score
NON_POLITICAL_KEYWORDS = [
    # IA y tecnología emergente
    "ia", "inteligencia artificial", "ai", "chatgpt", "gpt", "openai", "claude", "gemini", "bard",
    "machine learning", "deep learning", "neural network", "llm", "modelo de lenguaje",
    # Redes sociales y plataformas
    "whatsapp", "instagram", "tiktok", "youtube", "x", "twitter", "facebook", "snapchat",
    "threads", "telegram", "discord", "reddit", "twitch", "linkedin",
    # Dispositivos y marcas
    "iphone", "android", "samsung", "pixel", "ipad", "macbook", "apple", "google", "microsoft",
    "tesla", "spacex", "meta", "nvidia", "amd",
    # Cripto
    "bitcoin", "btc", "ethereum", "eth", "crypto", "criptomoneda", "blockchain", "web3", "nft",
    "binance", "coinbase", "solana", "dogecoin", "defi",
    # Tecnología general
    "tecnologia", "tech", "app", "startup", "software", "hardware", "cloud", "nube",
    "ciberseguridad", "hack", "breach", "vulnerabilidad", "ransomware", "malware",
    "datos", "data", "privacidad", "encryption",
    # Gaming y entretenimiento
    "videojuego", "gaming", "gamer", "esports", "playstation", "xbox", "nintendo", "steam",
    "trailer", "gameplay", "lanzamiento", "beta", "alpha", "early access",
    # Streaming y contenido viral
    "streaming", "streamer", "netflix", "disney+", "hbo", "amazon prime", "spotify",
    "podcast", "serie", "pelicula", "challenge", "meme", "filtro",
    "influencer", "youtuber", "tiktoker", "creator", "contenido viral",
    # Tendencias digitales
    "viral", "trend", "trending", "boom", "explosion", "rompe internet", "viraliza",
    "millones de vistas", "sensacion", "fenomeno", "record", "leak", "filtrado",
    "outage", "caida", "fallo masivo", "bug", "glitch",
]

POLITICAL_STOPWORDS = [
    "presidente", "ministro", "elecciones", "gobierno", "sancion", "sanciones",
    "congreso", "partido", "embajada", "parlamento", "senado", "diputado",
    "legislacion", "ley", "decreto", "referendum", "votacion",
]

BOOST_CUBA_KEYWORDS = [
    "cuba", "cubano", "cubana", "habana", "habanero",
    "díaz-canel", "diaz-canel", "bloqueo", "miami",
    "relaciones cuba", "la habana",
]

INTERNATIONAL_CONTEXT = ["eeuu", "ee.uu", "estados unidos", "internacional", "diplomacia", "relaciones"]

# Las palabras cortas ("x", "ia", "ai") solo cuentan como palabra completa
_SHORT_KEYWORD_LEN = 3
_keyword_patterns: Dict[str, re.Pattern] = {}


def _contains(text: str, keyword: str) -> bool:
    if len(keyword) > _SHORT_KEYWORD_LEN:
        return keyword in text
    pattern = _keyword_patterns.get(keyword)
    if pattern is None:
        pattern = re.compile(r"(?<!\w)" + re.escape(keyword) + r"(?!\w)")
        _keyword_patterns[keyword] = pattern
    return pattern.search(text) is not None


def _count_matches(text: str, keywords: Iterable[str]) -> int:
    return sum(1 for keyword in dict.fromkeys(keywords) if _contains(text, keyword))


def _get(source: Any, *names: str) -> Any:
    for name in names:
        if isinstance(source, Mapping):
            value = source.get(name)
        else:
            value = getattr(source, name, None)
        if value:
            return value
    return None


def _source_date(source: Any) -> Optional[datetime]:
    return parse_to_utc(_get(source, "published_at", "publishedAt", "fecha"))


def _topic_text(topic: Mapping[str, Any], with_content: bool = True) -> str:
    parts = [topic.get("title") or "", topic.get("description") or ""]
    if with_content:
        parts.append(topic.get("content") or "")
    return " ".join(parts).lower()


# Métricas individuales
# =====================


def calculate_recency(sources: List[Any], now: Optional[datetime] = None) -> float:
    """0 horas = 100, 7 días o más = 0. Fuentes sin fecha cuentan como viejas."""
    if not sources:
        return 0.0
    now = now or utc_now()
    total = 0.0
    for source in sources:
        published = _source_date(source)
        age = hours_between(now, published) if published else MAX_RECENCY_HOURS
        total += min(max(age, 0.0), MAX_RECENCY_HOURS)
    avg_age = total / len(sources)
    return max(0.0, 100.0 - (avg_age / MAX_RECENCY_HOURS) * 100.0)


def calculate_consensus(source_count: int) -> int:
    if source_count <= 0:
        return 0
    return min(source_count, 5) * 20


def calculate_authority(sources: List[Any]) -> int:
    """Promedio del mapa de autoridad; la primera coincidencia parcial gana."""
    if not sources:
        return 0
    total = 0
    for source in sources:
        name = str(_get(source, "medio", "source_name") or "").lower()
        authority = UNKNOWN_AUTHORITY
        for key, value in AUTHORITY_MAP.items():
            if key in name:
                authority = value
                break
        total += authority
    return round(total / len(sources))


def calculate_trend(sources: List[Any]) -> int:
    """Velocidad de aparición: muchas notas en pocas horas = tendencia alta."""
    if not sources or len(sources) < 2:
        return 50
    dates = sorted(d for d in (_source_date(s) for s in sources) if d is not None)
    if len(dates) < 2:
        return 50
    span_hours = hours_between(dates[-1], dates[0])
    velocity = len(sources) / max(span_hours, 1.0)
    return min(100, round(velocity * 100))


def calculate_cuba_relevance(text: str) -> int:
    return min(100, _count_matches((text or "").lower(), CUBA_RELEVANCE_KEYWORDS) * 20)


def calculate_novelty(text: str) -> int:
    return min(100, 50 + _count_matches((text or "").lower(), NOVELTY_KEYWORDS) * 10)


def calculate_trend_keywords(text: str) -> int:
    """+20 por palabra viral/tech, -15 por palabra política; acotado a 0..100."""
    lowered = (text or "").lower()
    trend = _count_matches(lowered, NON_POLITICAL_KEYWORDS)
    political = _count_matches(lowered, POLITICAL_STOPWORDS)
    return min(100, max(0, trend * 20 - political * 15))


def determine_confidence(
    sources: List[Any], consenso: float, now: Optional[datetime] = None
) -> str:
    """
    Alta: ≥3 dominios distintos, consenso ≥60 y todas las fechas dentro de
    48h. Media: ≥2 fuentes y consenso ≥40. Si no, Baja.
    """
    sources = sources or []
    domains = set()
    for source in sources:
        host = host_of(str(_get(source, "url") or ""))
        domains.add(host or str(_get(source, "medio") or "unknown"))

    dates = [d for d in (_source_date(s) for s in sources) if d is not None]
    temporal_consistency = False
    if len(dates) >= 2:
        temporal_consistency = hours_between(max(dates), min(dates)) <= 48

    if len(domains) >= 3 and consenso >= 60 and temporal_consistency:
        return "Alta"
    if len(sources) >= 2 and consenso >= 40:
        return "Media"
    return "Baja"


def apply_cuba_boost(
    score: float,
    article_text: str,
    url: str = "",
    category: Optional[str] = None,
) -> int:
    """Empuja los temas sobre Cuba: +40 base, +15 contexto internacional, +10 Internacional."""
    text = (article_text or "").lower()
    lowered_url = (url or "").lower()
    boost = 0
    if any(kw in text or kw in lowered_url for kw in BOOST_CUBA_KEYWORDS):
        boost += 40
        if any(kw in text for kw in INTERNATIONAL_CONTEXT):
            boost += 15
        if (category or "").lower() == "internacional":
            boost += 10
    return int(min(100, round(score + boost)))


def final_score(impacto: float, avg_freshness: float) -> float:
    """Impacto atenuado por frescura: un tema sin frescura conserva la mitad."""
    return impacto * (0.5 + 0.5 * max(0.0, min(1.0, avg_freshness)))


# Score compuesto
# ===============


@dataclass
class ImpactResult:
    score: int
    confidence: str
    metrics: Dict[str, float] = field(default_factory=dict)
    trend_keyword_score: int = 0


class ImpactScorer:
    """
    Calcula el impacto de un tema con pesos configurables.

    Los pesos se toman de AiConfig.impact_weights o, si no hay, de
    SCORING_CONFIG. Si no suman 1 se normalizan con una advertencia.
    """

    def __init__(self, weights: Optional[Dict[str, float]] = None):
        self.weights = {**DEFAULT_WEIGHTS, **(weights or SCORING_CONFIG.get("weights", {}))}

        weight_sum = sum(self.weights.values())
        if weight_sum > 0 and abs(weight_sum - 1.0) > 0.01:
            logger.warning(
                f"⚠️ Los pesos no suman 1.0 (suma: {weight_sum}). Normalizando..."
            )
            for key in self.weights:
                self.weights[key] /= weight_sum

    def score_topic(
        self, topic: Mapping[str, Any], now: Optional[datetime] = None
    ) -> ImpactResult:
        """
        Args:
            topic: ``{"title", "description", "content", "sources": [...]}``
                   donde cada fuente trae medio, url y fecha/published_at.
        """
        now = now or datetime.now(timezone.utc)
        sources = list(topic.get("sources") or [])
        text = _topic_text(topic)

        metrics = {
            "recencia": round(calculate_recency(sources, now), 2),
            "consenso": calculate_consensus(len(sources)),
            "autoridad": calculate_authority(sources),
            "tendencia": calculate_trend(sources),
            "relevanciaCuba": calculate_cuba_relevance(text),
            "novedad": calculate_novelty(text),
        }
        trend_score = calculate_trend_keywords(_topic_text(topic, with_content=False))

        weighted = sum(metrics[name] * self.weights.get(name, 0.0) for name in metrics)
        impacto = round(weighted + trend_score * TREND_KEYWORD_WEIGHT)
        impacto = min(100, max(0, impacto))

        confidence = determine_confidence(sources, metrics["consenso"], now)
        metrics["trendScore"] = trend_score

        return ImpactResult(
            score=impacto,
            confidence=confidence,
            metrics=metrics,
            trend_keyword_score=trend_score,
        )


def calculate_impact_score(
    topic: Mapping[str, Any],
    weights: Optional[Dict[str, float]] = None,
    now: Optional[datetime] = None,
) -> ImpactResult:
    return ImpactScorer(weights).score_topic(topic, now)
