from types import SimpleNamespace

import anthropic
import httpx
import openai
import pytest

from src.generation.llm_client import (
    LLMClient,
    LLMError,
    LLMResponse,
    is_openai_model,
    parse_clean_json,
    provider_for,
    resolve_model,
    retry_llm_call,
)

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"


class FakeOpenAI:
    def __init__(self, content=' {"titulo": "ok"} ', error=None):
        self.content = content
        self.error = error
        self.calls = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))],
            usage=SimpleNamespace(prompt_tokens=120, completion_tokens=80, total_tokens=200),
        )


class FakeAnthropic:
    def __init__(self, error=None):
        self.error = error
        self.calls = []
        self.messages = SimpleNamespace(create=self._create)

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(
            content=[
                SimpleNamespace(type="thinking", text="ignorar"),
                SimpleNamespace(type="text", text='{"titulo": '),
                SimpleNamespace(type="text", text='"ok"}'),
            ],
            usage=SimpleNamespace(input_tokens=300, output_tokens=100),
        )


CONFIG = {"max_output_tokens": 2048, "timeout_seconds": 5}


def test_model_routing_helpers() -> None:
    assert is_openai_model("gpt-4o-mini")
    assert is_openai_model("GPT-4o")
    assert not is_openai_model("claude-sonnet-4.5")
    assert not is_openai_model(None)
    assert provider_for("claude-opus") == "anthropic"
    assert resolve_model("claude-sonnet-4.5") == "claude-sonnet-4-5-20250929"
    assert resolve_model("claude-3-haiku-20240307") == "claude-3-haiku-20240307"


def test_openai_call_uses_json_mode_and_reports_usage() -> None:
    fake = FakeOpenAI()
    client = LLMClient(openai_client=fake, config=CONFIG)

    response = client.call("gpt-4o-mini", "sistema", "usuario", temperature=0.2)

    assert response.text == '{"titulo": "ok"}'
    assert response.is_json_mode
    assert response.usage == {"prompt_tokens": 120, "completion_tokens": 80, "total_tokens": 200}
    kwargs = fake.calls[0]
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["max_tokens"] == 2048
    assert [m["role"] for m in kwargs["messages"]] == ["system", "user"]


def test_openai_call_without_json_mode() -> None:
    fake = FakeOpenAI(content="texto libre")
    LLMClient(openai_client=fake, config=CONFIG).call("gpt-4o", "s", "u", json_mode=False)
    assert "response_format" not in fake.calls[0]


def test_anthropic_call_resolves_alias_and_joins_text_blocks() -> None:
    fake = FakeAnthropic()
    client = LLMClient(anthropic_client=fake, config=CONFIG)

    response = client.call("claude-sonnet-4.5", "sistema", "usuario")

    assert response.text == '{"titulo": "ok"}'
    assert response.model == "claude-sonnet-4-5-20250929"
    assert response.usage["total_tokens"] == 400
    assert fake.calls[0]["system"] == "sistema"
    assert fake.calls[0]["messages"] == [{"role": "user", "content": "usuario"}]


def test_provider_errors_become_llm_errors() -> None:
    rate_limited = openai.RateLimitError(
        "demasiadas solicitudes",
        response=httpx.Response(429, request=httpx.Request("POST", OPENAI_URL)),
        body=None,
    )
    with pytest.raises(LLMError) as excinfo:
        LLMClient(openai_client=FakeOpenAI(error=rate_limited), config=CONFIG).call("gpt-4o", "s", "u")
    assert excinfo.value.status == 429
    assert excinfo.value.provider == "openai"
    assert excinfo.value.retryable

    offline = anthropic.APIConnectionError(request=httpx.Request("POST", ANTHROPIC_URL))
    with pytest.raises(LLMError) as excinfo:
        LLMClient(anthropic_client=FakeAnthropic(error=offline), config=CONFIG).call("claude-opus", "s", "u")
    assert excinfo.value.status is None
    assert not excinfo.value.retryable


@pytest.mark.parametrize(
    "status, retryable",
    [(429, True), (500, True), (503, True), (400, False), (401, False), (None, False)],
)
def test_only_rate_limits_and_server_errors_are_retryable(status, retryable) -> None:
    assert LLMError("x", status=status).retryable is retryable


def test_retry_waits_exponentially_between_attempts() -> None:
    attempts = []
    sleeps = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise LLMError("saturado", status=503)
        return LLMResponse(text="{}")

    response = retry_llm_call(flaky, max_attempts=3, base_delay=1.0, sleep=sleeps.append)

    assert response.text == "{}"
    assert sleeps == [1.0, 2.0]


def test_retry_does_not_repeat_client_errors() -> None:
    sleeps = []

    def bad_request():
        raise LLMError("inválido", status=400)

    with pytest.raises(LLMError):
        retry_llm_call(bad_request, max_attempts=3, base_delay=1.0, sleep=sleeps.append)
    assert sleeps == []


def test_retry_gives_up_after_max_attempts() -> None:
    sleeps = []

    def limited():
        raise LLMError("límite", status=429)

    with pytest.raises(LLMError, match="límite"):
        retry_llm_call(limited, max_attempts=2, base_delay=0.5, sleep=sleeps.append)
    assert sleeps == [0.5]


@pytest.mark.parametrize(
    "text",
    [
        '{"titulo": "Apagones", "etiquetas": ["a", "b"]}',
        'Aquí tienes el artículo:\n```json\n{"titulo": "Apagones", "etiquetas": ["a", "b"]}\n```',
        '{"titulo": "Apagones", "etiquetas": ["a", "b",],}',
    ],
)
def test_parse_clean_json_recovers_common_model_output(text) -> None:
    assert parse_clean_json(text) == {"titulo": "Apagones", "etiquetas": ["a", "b"]}


def test_parse_clean_json_raises_on_garbage() -> None:
    with pytest.raises(ValueError, match="No se pudo parsear"):
        parse_clean_json("Lo siento, no puedo ayudar con eso.")
    with pytest.raises(ValueError):
        parse_clean_json("")


@pytest.mark.parametrize("text", ["[1, 2, 3]", '"solo texto"', "42", "null"])
def test_parse_clean_json_requires_an_object(text) -> None:
    with pytest.raises(ValueError, match="se esperaba un objeto"):
        parse_clean_json(text)
