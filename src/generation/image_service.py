# src/generation/image_service.py
# Portadas generadas por IA
# =========================

"""Portadas de borradores con DALL·E a través del SDK de OpenAI."""

from typing import Any, Dict, Optional

import openai

from config.settings import DEFAULT_TENANT, IMAGE_CONFIG, LLM_CONFIG
from src.stats.stats_service import StatsService, calculate_image_cost
from src.utils.logger import create_module_logger

logger = create_module_logger("images")

SUPPORTED_PROVIDERS = ("dall-e-3", "dall-e-2")
PROVIDER_SIZES = {"dall-e-3": None, "dall-e-2": "1024x1024"}


class ImageProviderError(Exception):
    """Proveedor no soportado o fallo del proveedor."""

    code = "IMAGE_PROVIDER_ERROR"
    http_status = 502

    def __init__(self, message: str, provider: str = ""):
        super().__init__(message)
        self.provider = provider


def build_image_prompt(title: str) -> str:
    return (
        f"Ilustración editorial para portada de noticia sobre: {title}. "
        "Estilo fotoperiodístico sobrio, composición horizontal, iluminación natural. "
        "Sin texto, sin letras, sin logotipos, sin marcas de agua."
    )


def _get(draft: Any, name: str) -> Any:
    return draft.get(name) if isinstance(draft, dict) else getattr(draft, name, None)


class ImageService:
    def __init__(
        self,
        client: Optional[Any] = None,
        stats: Optional[StatsService] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        self.config = config or IMAGE_CONFIG
        self._client = client
        self._stats = stats

    @property
    def client(self):
        if self._client is None:
            self._client = openai.OpenAI(
                api_key=LLM_CONFIG.get("openai_api_key"),
                timeout=LLM_CONFIG.get("timeout_seconds", 60),
            )
        return self._client

    @property
    def stats(self) -> StatsService:
        if self._stats is None:
            self._stats = StatsService()
        return self._stats

    def generate_cover(
        self,
        draft: Any,
        provider: Optional[str] = None,
        tenant_id: str = DEFAULT_TENANT,
        draft_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Genera la portada y devuelve los campos de imagen del borrador.

        Raises:
            ImageProviderError: proveedor no soportado o error de la API.
        """
        provider = (provider or self.config.get("provider") or "dall-e-3").lower()
        if provider not in SUPPORTED_PROVIDERS:
            raise ImageProviderError(f"Proveedor de imagen no soportado: {provider}", provider)

        prompts = _get(draft, "prompts_imagen") or []
        title = _get(draft, "titulo") or ""
        prompt = prompts[0] if prompts else build_image_prompt(title)

        size = PROVIDER_SIZES[provider] or self.config.get("size", "1792x1024")
        logger.info(f"🎨 Generando portada con {provider} ({size}): {title[:60]}")
        try:
            response = self.client.images.generate(model=provider, prompt=prompt, size=size, n=1)
        except openai.APIError as exc:
            raise ImageProviderError(f"Error de {provider}: {exc}", provider) from exc

        url = response.data[0].url if response.data else None
        if not url:
            raise ImageProviderError(f"{provider} no devolvió URL de imagen", provider)

        self.stats.log_cost(
            "image",
            calculate_image_cost(provider),
            tenant_id=tenant_id,
            draft_id=draft_id,
            metadata={"provider": provider, "size": size},
        )
        return {
            "cover_image_url": url,
            "image_kind": "ai",
            "image_provider": provider,
            "image_status": "ready",
        }
