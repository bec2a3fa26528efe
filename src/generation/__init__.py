"""Generación, portada y revisión de borradores."""

from .draft_generator import (
    DraftGenerator,
    DraftRejectedError,
    GenerationInProgressError,
    get_draft_generator,
    normalize_draft_payload,
)
from .image_service import ImageProviderError, ImageService, build_image_prompt
from .llm_client import LLMClient, LLMError, LLMResponse, get_llm_client, parse_clean_json, retry_llm_call
from .review_service import ReviewError, ReviewService, get_review_service

__all__ = [
    "DraftGenerator",
    "DraftRejectedError",
    "GenerationInProgressError",
    "ImageProviderError",
    "ImageService",
    "LLMClient",
    "LLMError",
    "LLMResponse",
    "ReviewError",
    "ReviewService",
    "build_image_prompt",
    "get_draft_generator",
    "get_llm_client",
    "get_review_service",
    "normalize_draft_payload",
    "parse_clean_json",
    "retry_llm_call",
]
