"""Contracts for scanned topics before persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, TypedDict

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.utils.datetime_utils import parse_to_utc

CONFIDENCE_VALUES = ("Baja", "Media", "Alta")


class TopicSource(TypedDict, total=False):
    medio: str
    titulo: str
    url: str
    fecha: Optional[str]


class TopicSourceModel(BaseModel):
    medio: str = "Desconocido"
    titulo: str = ""
    url: str
    fecha: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("fecha", mode="before")
    @classmethod
    def parse_fecha(cls, value: Any) -> Optional[datetime]:
        return parse_to_utc(value)

    def model_dump_for_storage(self) -> Dict[str, Any]:
        return {
            "medio": self.medio,
            "titulo": self.titulo,
            "url": self.url,
            "fecha": self.fecha.isoformat() if self.fecha else None,
        }


class TopicCandidateModel(BaseModel):
    """Validated topic produced by the scanner."""

    titulo_sugerido: str = Field(min_length=1, max_length=500)
    resumen_breve: str = ""
    impacto: int = Field(ge=0, le=100)
    confianza: str = "Baja"
    fuentes_top: List[TopicSourceModel] = Field(default_factory=list)
    categoria_sugerida: str = "General"
    image_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    @field_validator("resumen_breve", mode="before")
    @classmethod
    def truncate_summary(cls, value: Any) -> str:
        return str(value or "")[:500]

    @field_validator("impacto", mode="before")
    @classmethod
    def round_impact(cls, value: Any) -> int:
        return int(round(float(value)))

    @field_validator("confianza")
    @classmethod
    def validate_confidence(cls, value: str) -> str:
        if value not in CONFIDENCE_VALUES:
            raise ValueError(f"confianza must be one of {CONFIDENCE_VALUES}")
        return value

    def model_dump_for_storage(self) -> Dict[str, Any]:
        data = self.model_dump(mode="python", exclude={"fuentes_top"})
        data["fuentes_top"] = [src.model_dump_for_storage() for src in self.fuentes_top]
        return data
