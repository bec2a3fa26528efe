# src/scanner/topic_grouping.py
# Agrupación de artículos en temas
# ================================

"""
Agrupación voraz de los artículos escaneados en temas y construcción de cada
tema: título, resumen, categoría sugerida y fuentes principales.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from src.classification import suggest_category
from src.contracts import ScannedArticle

SIMILARITY_THRESHOLD = 0.5
MIN_WORD_LENGTH = 5
SUMMARY_MIN_CHARS = 20
SUMMARY_MAX_CHARS = 400
TOP_SOURCES = 5
FALLBACK_SUMMARY = "Sin descripción disponible"


def _significant_words(title: str) -> List[str]:
    return [word for word in (title or "").lower().split() if len(word) >= MIN_WORD_LENGTH]


def title_similarity(title_a: str, title_b: str) -> float:
    """Palabras significativas compartidas sobre el total del título con más palabras."""
    words_a = _significant_words(title_a)
    words_b = _significant_words(title_b)
    denominator = max(len(words_a), len(words_b))
    if denominator == 0:
        return 0.0
    common = sum(1 for word in words_a if word in words_b)
    return common / denominator


def are_similar(a: ScannedArticle, b: ScannedArticle, threshold: float = SIMILARITY_THRESHOLD) -> bool:
    return title_similarity(a.title, b.title) > threshold


def group_articles(
    articles: Sequence[ScannedArticle], threshold: float = SIMILARITY_THRESHOLD
) -> List[List[ScannedArticle]]:
    """
    Cada artículo libre abre un grupo y arrastra a los artículos libres
    posteriores con título parecido.
    """
    groups: List[List[ScannedArticle]] = []
    used = set()
    for i, article in enumerate(articles):
        if i in used:
            continue
        used.add(i)
        group = [article]
        for j in range(i + 1, len(articles)):
            if j not in used and are_similar(article, articles[j], threshold):
                group.append(articles[j])
                used.add(j)
        groups.append(group)
    return groups


@dataclass
class Topic:
    """Artículos sobre un mismo hecho, antes y después de puntuar."""

    titulo_sugerido: str
    resumen_breve: str
    categoria_sugerida: str
    articles: List[ScannedArticle]
    image_url: Optional[str] = None
    impacto: int = 0
    confianza: str = "Baja"
    metadata: Dict[str, Any] = field(default_factory=dict)
    freshness_avg: float = 0.0
    final_score: float = 0.0

    @property
    def fuentes_top(self) -> List[Dict[str, Any]]:
        return [article.as_source() for article in self.articles[:TOP_SOURCES]]

    def scoring_input(self) -> Dict[str, Any]:
        main = self.articles[0]
        return {
            "title": self.titulo_sugerido,
            "description": self.resumen_breve,
            "content": main.content,
            "sources": [
                {"medio": a.medio, "url": a.url, "published_at": a.published_at}
                for a in self.articles
            ],
        }

    def to_candidate(self, max_sources: int = 3) -> Dict[str, Any]:
        return {
            "titulo_sugerido": self.titulo_sugerido,
            "resumen_breve": self.resumen_breve,
            "impacto": self.impacto,
            "confianza": self.confianza,
            "fuentes_top": self.fuentes_top[:max_sources],
            "categoria_sugerida": self.categoria_sugerida,
            "image_url": self.image_url,
            "metadata": self.metadata,
        }


def _published_key(article: ScannedArticle) -> float:
    return article.published_at.timestamp() if isinstance(article.published_at, datetime) else float("-inf")


def build_topic(articles: Sequence[ScannedArticle]) -> Topic:
    """
    El artículo más reciente da el título. El resumen es la primera
    descripción de más de 20 caracteres. La categoría del dominio gana a la
    de palabras clave.
    """
    ordered = sorted(articles, key=_published_key, reverse=True)
    main = ordered[0]

    summary = next(
        (a.description for a in ordered if a.description and len(a.description) > SUMMARY_MIN_CHARS),
        None,
    )
    resumen = summary[:SUMMARY_MAX_CHARS] if summary else (main.title or FALLBACK_SUMMARY)

    category = main.category or suggest_category(main.title, main.description, main.host)
    image_url = next((a.image_url for a in ordered if a.image_url), None)

    return Topic(
        titulo_sugerido=main.title,
        resumen_breve=resumen,
        categoria_sugerida=category,
        articles=list(ordered),
        image_url=image_url,
    )


def group_into_topics(
    articles: Sequence[ScannedArticle], threshold: float = SIMILARITY_THRESHOLD
) -> List[Topic]:
    return [build_topic(group) for group in group_articles(articles, threshold)]
