from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from src.generation.llm_client import LLMError, LLMResponse
from src.storage.database import DatabaseManager

FIXED_NOW = datetime(2025, 3, 10, 17, 0, tzinfo=timezone.utc)  # 13:00 en La Habana


@pytest.fixture()
def db_manager(tmp_path) -> DatabaseManager:
    return DatabaseManager({"type": "sqlite", "path": tmp_path / "redactor.db"})


@pytest.fixture()
def now() -> datetime:
    return FIXED_NOW


class FakeLLM:
    """Devuelve respuestas en cola y registra cada llamada."""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *responses: Any) -> "FakeLLM":
        self.responses.extend(responses)
        return self

    def call(self, model, system, user, temperature=0.7, json_mode=True, max_tokens=None):
        self.calls.append(
            {"model": model, "system": system, "user": user, "temperature": temperature, "json_mode": json_mode}
        )
        if not self.responses:
            raise LLMError("sin respuestas en cola", status=400)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        text = item if isinstance(item, str) else json.dumps(item, ensure_ascii=False)
        return LLMResponse(
            text=text,
            usage={"prompt_tokens": 1000, "completion_tokens": 500, "total_tokens": 1500},
            is_json_mode=json_mode,
            model=model,
        )


class FakeImageClient:
    def __init__(self, url: str = "https://cdn.example.com/cover.png", error: Optional[Exception] = None):
        self.url = url
        self.error = error
        self.calls: List[Dict[str, Any]] = []
        self.images = SimpleNamespace(generate=self._generate)

    def _generate(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(data=[SimpleNamespace(url=self.url)])


@pytest.fixture()
def fake_llm() -> FakeLLM:
    return FakeLLM()


def make_topic_payload(**overrides: Any) -> Dict[str, Any]:
    payload = {
        "titulo_sugerido": "Apagones afectan a La Habana durante la ola de calor",
        "resumen_breve": "La Unión Eléctrica reporta déficit de generación en todo el país.",
        "impacto": 72,
        "confianza": "Media",
        "fuentes_top": [
            {
                "medio": "14ymedio",
                "titulo": "Apagones de hasta 20 horas en La Habana",
                "url": "https://www.14ymedio.com/cuba/apagones-habana",
                "fecha": "2025-03-10T12:00:00+00:00",
            },
            {
                "medio": "CiberCuba",
                "titulo": "La UNE anuncia déficit récord",
                "url": "https://www.cibercuba.com/noticias/une-deficit",
                "fecha": "2025-03-10T10:00:00+00:00",
            },
        ],
        "categoria_sugerida": "Cuba",
    }
    payload.update(overrides)
    return payload


def make_draft_payload(**overrides: Any) -> Dict[str, Any]:
    payload = {
        "titulo": "Apagones prolongados golpean a La Habana",
        "bajada": "La Unión Eléctrica reconoce un déficit de más de 1.500 MW.",
        "categoria": "Cuba",
        "etiquetas": ["apagones", "energía"],
        "contenido_html": "<p>" + "La crisis energética se agrava en la capital cubana. " * 20 + "</p>",
        "mode": "factual",
        "tenant_id": "levantatecuba",
        "cover_image_url": "https://cdn.example.com/cover.png",
        "image_status": "ready",
        "ai_metadata": {"model": "gpt-4o-mini", "categoryConfidence": 0.8},
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def topic(db_manager):
    return db_manager.save_topics([make_topic_payload()])[0]


@pytest.fixture()
def draft(db_manager):
    return db_manager.save_draft(make_draft_payload())


@pytest.fixture()
def news_factory(db_manager):
    def _create(**overrides: Any):
        fields = {
            "tenant_id": "levantatecuba",
            "titulo": "Nueva subida de precios en los mercados de Santiago de Cuba",
            "bajada": "Los productos básicos alcanzan máximos históricos en la segunda ciudad del país.",
            "contenido": "<p>Los vendedores explican que el costo del transporte encarece todo.</p>",
            "categoria": "Cuba",
            "etiquetas": ["precios", "economía"],
            "imagen": "https://cdn.example.com/precios.png",
            "status": "published",
            "published_at": FIXED_NOW - timedelta(hours=2),
        }
        fields.update(overrides)
        return db_manager.create_news_post(**fields)

    return _create
