"""Contracts for generated drafts."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DRAFT_MODES = ("factual", "opinion")


class DraftPayloadModel(BaseModel):
    """Normalized LLM draft ready to be stored as an AiDraft."""

    titulo: str = Field(min_length=1, max_length=500)
    bajada: str = ""
    categoria: str = "General"
    etiquetas: List[str] = Field(default_factory=list)
    contenido_markdown: str = ""
    contenido_html: str = ""
    fuentes: List[Dict[str, Any]] = Field(default_factory=list)
    verifications: List[Dict[str, Any]] = Field(default_factory=list)
    prompts_imagen: List[str] = Field(default_factory=list)
    mode: str = "factual"
    topic_id: Optional[int] = None
    tenant_id: Optional[str] = None
    generation_type: str = "auto"
    generated_by: Optional[str] = None
    cover_image_url: Optional[str] = None
    image_kind: Optional[str] = None
    image_provider: Optional[str] = None
    image_status: str = "none"
    ai_metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    @field_validator("etiquetas", mode="before")
    @classmethod
    def keep_string_tags(cls, value: Any) -> List[str]:
        if not value:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(tag).strip() for tag in value if isinstance(tag, str) and tag.strip()]

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, value: str) -> str:
        if value not in DRAFT_MODES:
            raise ValueError(f"mode must be one of {DRAFT_MODES}")
        return value

    @field_validator("generation_type")
    @classmethod
    def validate_generation_type(cls, value: str) -> str:
        if value not in ("manual", "auto"):
            raise ValueError("generation_type must be 'manual' or 'auto'")
        return value

    def model_dump_for_storage(self) -> Dict[str, Any]:
        return self.model_dump(mode="python")
