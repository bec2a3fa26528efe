# src/publishing/facebook_publisher.py
# Publicación de noticias en la página de Facebook
# ================================================

"""
Publica una noticia como photo post en la Graph API: la foto es la
portada, el caption es resumen + enlace + hashtags.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import httpx

from config.settings import FACEBOOK_CONFIG, PUBLIC_ORIGIN
from src.utils.logger import create_module_logger
from src.utils.text_cleaner import strip_diacritics, strip_tags

logger = create_module_logger("facebook")

GRAPH_BASE_URL = "https://graph.facebook.com"
SUMMARY_MAX_CHARS = 180
SUMMARY_MIN_SENTENCE = 30
TITLE_PREFIX_CHARS = 30
MAX_HASHTAGS = 5
MAX_TAG_HASHTAGS = 3
READ_MORE_LINE = "👉 Lee la noticia completa aquí:"

# Códigos de error de la Graph API
ERROR_MESSAGES = {
    190: "Token inválido o expirado",
    200: "Permisos insuficientes. Se requieren: pages_manage_posts y pages_read_engagement",
    100: "Parámetro inválido",
    33: "Recurso no encontrado",
    2: "Error temporal del servicio",
    4: "Límite de solicitudes alcanzado",
    17: "Límite de publicaciones alcanzado",
    368: "Contenido bloqueado por políticas",
    10: "Sin permisos para esta página",
}

_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9\s]")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]\s+")
_AVIF_RE = re.compile(r"\.avif$", re.IGNORECASE)


class FacebookPublishError(Exception):
    def __init__(self, message: str, code: str = "FACEBOOK_ERROR", http_status: int = 502):
        super().__init__(message)
        self.code = code
        self.http_status = http_status


@dataclass
class FacebookPostResult:
    post_id: str
    permalink: str


def build_news_public_url(news_id: Any, origin: Optional[str] = None) -> str:
    base = (origin or PUBLIC_ORIGIN).rstrip("/")
    return f"{base}/noticias/{news_id}"


def normalize_hashtag(text: Optional[str]) -> str:
    if not text or not isinstance(text, str):
        return ""
    cleaned = _NON_ALNUM_RE.sub("", strip_diacritics(text)).strip()
    pascal = "".join(word[:1].upper() + word[1:].lower() for word in cleaned.split())
    return f"#{pascal}" if pascal else ""


def build_hashtags(categoria: Optional[str], etiquetas: Optional[Iterable[str]] = None) -> str:
    tags = ["#Cuba"]
    category_tag = normalize_hashtag(categoria)
    if category_tag and category_tag not in tags:
        tags.append(category_tag)
    for tag in [normalize_hashtag(t) for t in list(etiquetas or [])[:MAX_TAG_HASHTAGS]]:
        if tag and tag not in tags:
            tags.append(tag)
    return " ".join(tags[:MAX_HASHTAGS])


def _cut(text: str, limit: int = SUMMARY_MAX_CHARS) -> str:
    if len(text) <= limit:
        return text
    truncated = text[:limit]
    last_space = truncated.rfind(" ")
    return truncated[:last_space] if last_space > 0 else truncated


def extract_summary(titulo: str, bajada: Optional[str], contenido: Optional[str]) -> str:
    """Resumen para el caption que no repite el título."""
    titulo = titulo or ""
    title_start = titulo[:TITLE_PREFIX_CHARS].lower().strip()

    if bajada and bajada.strip():
        clean = bajada.strip()
        if not clean[:TITLE_PREFIX_CHARS].lower().strip().startswith(title_start):
            return _cut(clean)

    text = " ".join(strip_tags(contenido or "").split())
    if not text:
        return ""

    title_lower = titulo.lower().strip()
    for sentence in _SENTENCE_SPLIT_RE.split(text):
        lowered = sentence.strip().lower()
        if len(lowered) < SUMMARY_MIN_SENTENCE or lowered == title_lower:
            continue
        if not lowered[:TITLE_PREFIX_CHARS].startswith(title_lower[:TITLE_PREFIX_CHARS]):
            return _cut(sentence.strip())

    start = text.lower().find(title_lower) if title_lower else -1
    remaining = text[start + len(titulo):].strip() if start >= 0 else text
    return _cut(remaining)


def build_facebook_message(news: Any, origin: Optional[str] = None) -> str:
    titulo = (news.titulo or "").strip()
    summary = extract_summary(titulo, news.bajada, news.contenido)
    parts = [summary] if summary else []
    parts += [
        "",
        READ_MORE_LINE,
        build_news_public_url(news.id, origin),
        "",
        build_hashtags(news.categoria, news.etiquetas),
    ]
    return "\n".join(parts)


def build_absolute_image_url(news: Any, origin: Optional[str] = None) -> Optional[str]:
    image = (news.imagen or "").strip()
    if not image:
        return None
    if not image.startswith(("http://", "https://")):
        base = (origin or PUBLIC_ORIGIN).rstrip("/")
        image = f"{base}/{image.lstrip('/')}"
    if _AVIF_RE.search(image):
        logger.warning("⚠️ Portada AVIF no soportada por Facebook, usando WebP")
        image = _AVIF_RE.sub(".webp", image)
    return image


class FacebookPublisher:
    def __init__(self, client: Optional[httpx.Client] = None, config: Optional[Dict[str, Any]] = None):
        self.config = config or FACEBOOK_CONFIG
        self.client = client or httpx.Client(timeout=float(self.config.get("timeout_seconds", 30)))

    def _url(self, path: str) -> str:
        return f"{GRAPH_BASE_URL}/{self.config.get('graph_version', 'v23.0')}/{path}"

    def publish_news(self, news: Any, lock_held: bool = False) -> FacebookPostResult:
        """
        ``lock_held`` indica que quien llama ya marcó la noticia como ``sharing``.

        Raises:
            FacebookPublishError: INVALID_NEWS / INVALID_IMAGE_URL / INVALID_MESSAGE (400),
                NO_TOKEN (401), ALREADY_PUBLISHED / PUBLISHING_IN_PROGRESS (409),
                CONFIG_ERROR (500), GRAPH_ERROR (502).
        """
        if news is None or getattr(news, "id", None) is None:
            raise FacebookPublishError("Noticia inválida", "INVALID_NEWS", 400)
        if news.facebook_post_id or news.published_to_facebook or news.facebook_status == "published":
            raise FacebookPublishError("Esta noticia ya fue publicada en Facebook", "ALREADY_PUBLISHED", 409)
        if news.facebook_status == "sharing" and not lock_held:
            raise FacebookPublishError("Esta noticia ya está siendo publicada en Facebook", "PUBLISHING_IN_PROGRESS", 409)
        if not self.config.get("page_token"):
            raise FacebookPublishError("No hay token de página disponible (FACEBOOK_PAGE_TOKEN)", "NO_TOKEN", 401)
        if not self.config.get("page_id"):
            raise FacebookPublishError("Falta FACEBOOK_PAGE_ID en la configuración", "CONFIG_ERROR", 500)

        image_url = build_absolute_image_url(news, self.config.get("public_origin"))
        if not image_url:
            raise FacebookPublishError(
                f"Noticia {news.id} sin URL de imagen para el photo post", "INVALID_IMAGE_URL", 400
            )

        message = build_facebook_message(news, self.config.get("public_origin"))
        if not message.strip():
            raise FacebookPublishError("El mensaje es obligatorio", "INVALID_MESSAGE", 400)
        token = self.config["page_token"]
        logger.info(f"📘 Publicando noticia {news.id} en /{self.config['page_id']}/photos")

        data = self._request(
            "POST",
            self._url(f"{self.config['page_id']}/photos"),
            data={"url": image_url, "caption": message, "access_token": token},
        )
        post_id = data.get("post_id") or data.get("id")
        if not post_id:
            raise FacebookPublishError("La Graph API no devolvió id de publicación", "GRAPH_ERROR", 502)

        permalink = self.get_permalink(post_id)
        logger.info(f"✅ Noticia {news.id} publicada en Facebook: {permalink}")
        return FacebookPostResult(post_id=post_id, permalink=permalink)

    def get_permalink(self, post_id: str) -> str:
        fallback = f"https://www.facebook.com/{post_id}"
        try:
            data = self._request(
                "GET",
                self._url(post_id),
                params={"fields": "permalink_url", "access_token": self.config["page_token"]},
            )
        except FacebookPublishError as exc:
            logger.warning(f"⚠️ No se pudo obtener el permalink de {post_id}: {exc}")
            return fallback
        return data.get("permalink_url") or fallback

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise FacebookPublishError(f"Error de red con la Graph API: {exc}", "GRAPH_ERROR", 502) from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.status_code >= 400 or "error" in data:
            error = data.get("error") or {}
            code = error.get("code")
            message = ERROR_MESSAGES.get(code) or error.get("message") or f"HTTP {response.status_code}"
            raise FacebookPublishError(f"Graph API {code or response.status_code}: {message}", "GRAPH_ERROR", 502)
        return data
