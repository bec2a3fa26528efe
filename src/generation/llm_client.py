# src/generation/llm_client.py
# Cliente LLM del Redactor IA
# ===========================

"""
Una sola puerta hacia OpenAI y Anthropic.

Los modelos ``gpt-*`` van por chat completions (con ``json_object`` cuando
se pide JSON); el resto por ``messages.create`` de Anthropic. Los errores
de ambos SDK se convierten en ``LLMError`` con el status HTTP, que es lo
que ``retry_llm_call`` usa para decidir si reintentar.
"""

import json
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import anthropic
import openai

from config.settings import LLM_CONFIG
from src.utils.logger import create_module_logger

logger = create_module_logger("llm")

# Alias de AiConfig.ai_model → id real del proveedor
MODEL_ALIASES: Dict[str, str] = {
    "claude-sonnet-4.5-thinking": "claude-sonnet-4-5-20250929",
    "claude-sonnet-4.5": "claude-sonnet-4-5-20250929",
    "claude-opus": "claude-opus-4-1-20250805",
    "claude-haiku": "claude-3-5-haiku-20241022",
}

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


class LLMError(Exception):
    """Fallo de una llamada al proveedor; ``status`` es el HTTP si lo hubo."""

    def __init__(self, message: str, status: Optional[int] = None, provider: str = ""):
        super().__init__(message)
        self.status = status
        self.provider = provider

    @property
    def retryable(self) -> bool:
        return self.status == 429 or (self.status is not None and 500 <= self.status < 600)


@dataclass
class LLMResponse:
    text: str
    usage: Dict[str, int] = field(
        default_factory=lambda: {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
    )
    is_json_mode: bool = False
    model: str = ""


def is_openai_model(model: Optional[str]) -> bool:
    return bool(model) and model.lower().startswith("gpt-")


def resolve_model(model: str) -> str:
    return MODEL_ALIASES.get(model, model)


def provider_for(model: str) -> str:
    return "openai" if is_openai_model(model) else "anthropic"


class LLMClient:
    """
    Cliente perezoso: cada SDK se instancia la primera vez que se usa, así
    un despliegue con una sola clave funciona sin configurar la otra.
    """

    def __init__(
        self,
        openai_client: Optional[Any] = None,
        anthropic_client: Optional[Any] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        self.config = config or LLM_CONFIG
        self._openai = openai_client
        self._anthropic = anthropic_client

    @property
    def openai(self):
        if self._openai is None:
            self._openai = openai.OpenAI(
                api_key=self.config.get("openai_api_key"),
                timeout=self.config.get("timeout_seconds", 60),
            )
        return self._openai

    @property
    def anthropic(self):
        if self._anthropic is None:
            self._anthropic = anthropic.Anthropic(
                api_key=self.config.get("anthropic_api_key"),
                timeout=self.config.get("timeout_seconds", 60),
            )
        return self._anthropic

    def call(
        self,
        model: str,
        system: str,
        user: str,
        temperature: float = 0.3,
        json_mode: bool = True,
    ) -> LLMResponse:
        """
        Raises:
            LLMError: con ``status`` del proveedor (None para timeouts y red).
        """
        if is_openai_model(model):
            return self._call_openai(model, system, user, temperature, json_mode)
        return self._call_anthropic(resolve_model(model), system, user, temperature)

    def _call_openai(
        self, model: str, system: str, user: str, temperature: float, json_mode: bool
    ) -> LLMResponse:
        kwargs: Dict[str, Any] = {
            "model": model,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_tokens": self.config.get("max_output_tokens", 4096),
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self.openai.chat.completions.create(**kwargs)
        except openai.APIStatusError as exc:
            raise LLMError(f"OpenAI {exc.status_code}: {exc}", exc.status_code, "openai") from exc
        except openai.APIError as exc:
            raise LLMError(f"OpenAI sin respuesta: {exc}", None, "openai") from exc

        text = (response.choices[0].message.content or "") if response.choices else ""
        usage = response.usage
        return LLMResponse(
            text=text.strip(),
            usage={
                "prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
                "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
                "total_tokens": getattr(usage, "total_tokens", 0) or 0,
            },
            is_json_mode=json_mode,
            model=model,
        )

    def _call_anthropic(self, model: str, system: str, user: str, temperature: float) -> LLMResponse:
        try:
            message = self.anthropic.messages.create(
                model=model,
                max_tokens=self.config.get("max_output_tokens", 4096),
                temperature=temperature,
                system=system,
                messages=[{"role": "user", "content": user}],
            )
        except anthropic.APIStatusError as exc:
            raise LLMError(f"Anthropic {exc.status_code}: {exc}", exc.status_code, "anthropic") from exc
        except anthropic.APIError as exc:
            raise LLMError(f"Anthropic sin respuesta: {exc}", None, "anthropic") from exc

        text = "".join(
            block.text for block in (message.content or []) if getattr(block, "type", "") == "text"
        )
        input_tokens = getattr(message.usage, "input_tokens", 0) or 0
        output_tokens = getattr(message.usage, "output_tokens", 0) or 0
        return LLMResponse(
            text=text.strip(),
            usage={
                "prompt_tokens": input_tokens,
                "completion_tokens": output_tokens,
                "total_tokens": input_tokens + output_tokens,
            },
            is_json_mode=False,
            model=model,
        )


def retry_llm_call(
    fn: Callable[[], LLMResponse],
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> LLMResponse:
    """Reintenta solo 429 y 5xx, esperando base × 2^n entre intentos."""
    max_attempts = max_attempts or LLM_CONFIG.get("max_attempts", 2)
    base_delay = LLM_CONFIG.get("retry_base_seconds", 2.0) if base_delay is None else base_delay

    for attempt in range(1, max_attempts + 1):
        try:
            return fn()
        except LLMError as exc:
            if attempt == max_attempts or not exc.retryable:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(f"🔁 Reintento LLM {attempt}/{max_attempts} en {delay:.1f}s ({exc.status})")
            sleep(delay)
    raise LLMError("retry_llm_call sin intentos")


def parse_clean_json(text: str) -> Dict[str, Any]:
    """
    Parsea la respuesta del modelo: directo, luego sin fences y recortando
    al objeto más externo, luego quitando comas finales.

    Raises:
        ValueError: si ninguna estrategia produce un objeto JSON.
    """
    text = (text or "").strip()
    stripped = _FENCE_RE.sub("", text).strip()
    candidates = [text]
    match = _OBJECT_RE.search(stripped)
    if match:
        candidates.append(match.group(0))
        candidates.append(_TRAILING_COMMA_RE.sub(r"\1", match.group(0)))

    last_error = "sin objeto JSON"
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as exc:
            last_error = str(exc)
            continue
        if isinstance(parsed, dict):
            return parsed
        last_error = f"se esperaba un objeto y llegó {type(parsed).__name__}"

    logger.error(f"❌ No se pudo parsear JSON del LLM ({len(text)} chars): {text[:500]}")
    raise ValueError(f"No se pudo parsear JSON del LLM: {last_error}")


_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    global _client
    if _client is None:
        _client = LLMClient()
    return _client
