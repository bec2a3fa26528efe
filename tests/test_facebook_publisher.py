from types import SimpleNamespace
from urllib.parse import parse_qs

import httpx
import pytest

from src.publishing import facebook_publisher
from src.publishing.facebook_publisher import (
    READ_MORE_LINE,
    FacebookPublishError,
    FacebookPublisher,
    build_absolute_image_url,
    build_facebook_message,
    build_hashtags,
    extract_summary,
    normalize_hashtag,
)

CONFIG = {
    "page_id": "1234",
    "page_token": "page-token",
    "graph_version": "v23.0",
    "timeout_seconds": 5,
    "public_origin": "https://levantatecuba.com",
}
ORIGIN = CONFIG["public_origin"]


def _news(**overrides):
    fields = {
        "id": 42,
        "titulo": "Nueva subida de precios en los mercados de Santiago de Cuba",
        "bajada": "Los productos básicos alcanzan máximos históricos en la segunda ciudad del país.",
        "contenido": "<p>Los vendedores explican que el costo del transporte encarece todo.</p>",
        "categoria": "Economía",
        "etiquetas": ["precios", "Santiago de Cuba"],
        "imagen": "https://cdn.example.com/precios.png",
        "facebook_post_id": None,
        "published_to_facebook": False,
        "facebook_status": "not_shared",
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


class GraphAPI:
    """Graph API mínima: /photos devuelve post_id y /<post_id> el permalink."""

    def __init__(self, photo_response=None, permalink_status=200):
        self.photo_response = photo_response or httpx.Response(200, json={"id": "555", "post_id": "1234_999"})
        self.permalink_status = permalink_status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/photos"):
            return self.photo_response
        if self.permalink_status != 200:
            return httpx.Response(self.permalink_status, json={"error": {"code": 100, "message": "x"}})
        return httpx.Response(200, json={"permalink_url": "https://www.facebook.com/levantatecuba/posts/999"})


def _publisher(handler, config=CONFIG):
    return FacebookPublisher(client=httpx.Client(transport=httpx.MockTransport(handler)), config=config)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("derechos humanos", "#DerechosHumanos"),
        ("Economía", "#Economia"),
        ("Socio político", "#SocioPolitico"),
        ("¡¡ !!", ""),
        (None, ""),
    ],
)
def test_normalize_hashtag(text, expected) -> None:
    assert normalize_hashtag(text) == expected


def test_hashtags_start_with_cuba_and_skip_duplicates() -> None:
    tags = build_hashtags("Cuba", ["apagones", "Unión Eléctrica", "energía", "ignorada"])
    assert tags == "#Cuba #Apagones #UnionElectrica #Energia"


def test_summary_prefers_bajada_that_does_not_repeat_title() -> None:
    news = _news()
    assert extract_summary(news.titulo, news.bajada, news.contenido) == news.bajada


def test_summary_falls_back_to_first_new_sentence() -> None:
    summary = extract_summary(
        "Apagones en La Habana",
        "Apagones en La Habana por tercer día",
        "<p>Apagones en La Habana. La Unión Eléctrica reporta un déficit de 1.500 MW en horario pico. Más datos.</p>",
    )
    assert summary == "La Unión Eléctrica reporta un déficit de 1.500 MW en horario pico"


def test_summary_is_cut_at_a_word_boundary() -> None:
    bajada = "palabra " * 40
    summary = extract_summary("Título", bajada, "")
    assert len(summary) <= 180
    assert summary.endswith("palabra")


def test_message_layout() -> None:
    message = build_facebook_message(_news(), ORIGIN)

    lines = message.split("\n")
    assert lines[0] == _news().bajada
    assert lines[1] == ""
    assert lines[2] == READ_MORE_LINE
    assert lines[3] == "https://levantatecuba.com/noticias/42"
    assert lines[5] == "#Cuba #Economia #Precios #SantiagoDeCuba"


@pytest.mark.parametrize(
    "imagen, expected",
    [
        ("https://cdn.example.com/a.png", "https://cdn.example.com/a.png"),
        ("/media/portada.avif", "https://levantatecuba.com/media/portada.webp"),
        ("", None),
    ],
)
def test_absolute_image_url(imagen, expected) -> None:
    assert build_absolute_image_url(_news(imagen=imagen), ORIGIN) == expected


def test_publish_news_posts_photo_and_fetches_permalink() -> None:
    graph = GraphAPI()

    result = _publisher(graph).publish_news(_news())

    assert result.post_id == "1234_999"
    assert result.permalink == "https://www.facebook.com/levantatecuba/posts/999"
    photo_request = graph.requests[0]
    assert photo_request.method == "POST"
    assert photo_request.url.path == "/v23.0/1234/photos"
    form = parse_qs(photo_request.content.decode())
    assert form["url"] == ["https://cdn.example.com/precios.png"]
    assert form["access_token"] == ["page-token"]
    assert "https://levantatecuba.com/noticias/42" in form["caption"][0]
    assert graph.requests[1].url.params["fields"] == "permalink_url"


def test_permalink_failure_uses_fallback_url() -> None:
    result = _publisher(GraphAPI(permalink_status=400)).publish_news(_news())
    assert result.permalink == "https://www.facebook.com/1234_999"


def test_graph_error_codes_are_translated() -> None:
    graph = GraphAPI(photo_response=httpx.Response(400, json={"error": {"code": 190, "message": "expired"}}))

    with pytest.raises(FacebookPublishError) as excinfo:
        _publisher(graph).publish_news(_news())

    assert excinfo.value.code == "GRAPH_ERROR"
    assert excinfo.value.http_status == 502
    assert "Token inválido o expirado" in str(excinfo.value)


def test_network_errors_are_graph_errors() -> None:
    def offline(request):
        raise httpx.ConnectError("sin red", request=request)

    with pytest.raises(FacebookPublishError, match="Error de red"):
        _publisher(offline).publish_news(_news())


@pytest.mark.parametrize(
    "overrides, code, status",
    [
        ({"facebook_post_id": "1234_1"}, "ALREADY_PUBLISHED", 409),
        ({"published_to_facebook": True}, "ALREADY_PUBLISHED", 409),
        ({"facebook_status": "sharing"}, "PUBLISHING_IN_PROGRESS", 409),
        ({"id": None}, "INVALID_NEWS", 400),
        ({"imagen": ""}, "INVALID_IMAGE_URL", 400),
        ({"imagen": "   "}, "INVALID_IMAGE_URL", 400),
    ],
)
def test_publish_news_guards(overrides, code, status) -> None:
    with pytest.raises(FacebookPublishError) as excinfo:
        _publisher(GraphAPI()).publish_news(_news(**overrides))
    assert excinfo.value.code == code
    assert excinfo.value.http_status == status


def test_lock_holder_can_publish_sharing_news() -> None:
    result = _publisher(GraphAPI()).publish_news(_news(facebook_status="sharing"), lock_held=True)
    assert result.post_id == "1234_999"


@pytest.mark.parametrize(
    "overrides, code, status",
    [
        ({"page_token": None}, "NO_TOKEN", 401),
        ({"page_token": ""}, "NO_TOKEN", 401),
        ({"page_id": None}, "CONFIG_ERROR", 500),
    ],
)
def test_missing_credentials(overrides, code, status) -> None:
    graph = GraphAPI()
    publisher = _publisher(graph, config={**CONFIG, **overrides})

    with pytest.raises(FacebookPublishError) as excinfo:
        publisher.publish_news(_news())

    assert excinfo.value.code == code
    assert excinfo.value.http_status == status
    assert graph.requests == []


def test_invalid_news_is_rejected() -> None:
    with pytest.raises(FacebookPublishError) as excinfo:
        _publisher(GraphAPI()).publish_news(None)
    assert excinfo.value.code == "INVALID_NEWS"


def test_blank_message_is_rejected(monkeypatch) -> None:
    monkeypatch.setattr(facebook_publisher, "build_facebook_message", lambda news, origin=None: "  \n ")
    graph = GraphAPI()

    with pytest.raises(FacebookPublishError) as excinfo:
        _publisher(graph).publish_news(_news())

    assert excinfo.value.code == "INVALID_MESSAGE"
    assert excinfo.value.http_status == 400
    assert graph.requests == []
