"""Contracts for collector outputs."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, TypedDict

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.utils.datetime_utils import parse_to_utc
from src.utils.url_canonicalizer import host_of

ARTICLE_ORIGINS = ("newsapi", "rss", "cuba_rss")


class ScannedArticlePayload(TypedDict, total=False):
    """Serialized representation of an article produced by collectors."""

    title: str
    description: str
    content: str
    url: str
    published_at: datetime
    medio: str
    host: str
    image_url: str
    origin: str
    category: str
    entities: List[Dict[str, str]]
    freshness: float


class ScannedArticle(BaseModel):
    """A single news item as seen by the scanner, whatever its origin."""

    title: str = Field(min_length=1)
    description: str = ""
    content: str = ""
    url: str = Field(min_length=8)
    published_at: Optional[datetime] = None
    medio: str = "Desconocido"
    host: str = ""
    image_url: Optional[str] = None
    origin: str = "rss"
    # Categoría temprana por dominio (Tecnología / Tendencia)
    category: Optional[str] = None
    # Entidades nombradas {"label": "GPE", "text": "Cuba"} si hay NER disponible
    entities: List[Dict[str, str]] = Field(default_factory=list)
    freshness: float = 0.0

    model_config = ConfigDict(extra="ignore")

    @field_validator("title", "description", "content", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("url", mode="before")
    @classmethod
    def validate_url(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text.startswith(("http://", "https://")):
            raise ValueError("url must start with http or https")
        return text

    @field_validator("published_at", mode="before")
    @classmethod
    def ensure_utc(cls, value: Any) -> Optional[datetime]:
        return parse_to_utc(value)

    @field_validator("origin")
    @classmethod
    def validate_origin(cls, value: str) -> str:
        if value not in ARTICLE_ORIGINS:
            raise ValueError(f"origin must be one of {ARTICLE_ORIGINS}, got '{value}'")
        return value

    def model_post_init(self, __context: Any) -> None:
        if not self.host:
            self.host = host_of(self.url)

    @property
    def text(self) -> str:
        """Título y descripción juntos, para búsquedas por palabra clave."""
        return f"{self.title} {self.description}".strip()

    def as_source(self) -> Dict[str, Any]:
        """Representación ``{medio, titulo, url, fecha}`` usada en fuentes_top."""
        return {
            "medio": self.medio,
            "titulo": self.title,
            "url": self.url,
            "fecha": self.published_at.isoformat() if self.published_at else None,
        }
