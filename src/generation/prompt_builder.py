# src/generation/prompt_builder.py
# Prompts y validaciones de contenido del Redactor IA
# ===================================================

"""
Define la estructura obligatoria de los artículos, construye los prompts
de sistema y de usuario, y valida lo que devuelve el modelo.

Los artículos factuales DEBEN traer estas cuatro secciones H2, en orden:
Contexto del hecho → Causa y consecuencia → Por qué es importante →
Datos importantes. Si faltan una o dos se completan con texto de reserva;
si faltan más, el borrador se rechaza.
"""

import html
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from markdown import markdown as render_markdown

from src.classification import ALLOWED_CATEGORIES
from src.utils.logger import create_module_logger

logger = create_module_logger("prompts")

SITE_NAME = "LevántateCuba"
TARGET_LENGTH = {"factual": 1000, "opinion": 750}
SNIPPET_CHARS = 500
MAX_MISSING_SECTIONS = 2


@dataclass(frozen=True)
class Section:
    id: str
    heading: str
    pattern: re.Pattern
    placeholder: str


REQUIRED_SECTIONS_FACTUAL: List[Section] = [
    Section(
        "contexto",
        "## Contexto del hecho",
        re.compile(r"^##\s*contexto\s+del\s+hecho", re.IGNORECASE | re.MULTILINE),
        "La información de contexto no está disponible al momento de esta publicación. "
        "Se actualizará cuando se obtengan más detalles.",
    ),
    Section(
        "causa",
        "## Causa y consecuencia",
        re.compile(r"^##\s*causa\s+y\s+consecuencia", re.IGNORECASE | re.MULTILINE),
        "Aún no se han determinado las causas exactas de este suceso ni sus posibles "
        "consecuencias a mediano plazo.",
    ),
    Section(
        "importancia",
        "## Por qué es importante",
        re.compile(r"^##\s*por\s+qu[eé]\s+(es\s+)?importante", re.IGNORECASE | re.MULTILINE),
        "Este hecho representa un evento significativo cuyas implicaciones aún están "
        "siendo evaluadas por analistas y observadores.",
    ),
    Section(
        "datos",
        "## Datos importantes",
        re.compile(r"^##\s*datos\s+importantes", re.IGNORECASE | re.MULTILINE),
        "- No se han divulgado datos oficiales adicionales al momento de esta publicación.",
    ),
]

OPINION_SECTIONS = [
    "## Declaración inicial",
    "## Nuestra postura",
    "## Los hechos que respaldan",
    "## Por qué debe importarnos",
    "## Lo que nadie dice",
    "## Reflexión final",
]

OPINION_PHRASES = ["creo que", "pienso que", "en mi opinión", "considero que", "deberíamos"]
STANCE_PHRASES = [
    "debemos",
    "necesitamos",
    "es inaceptable",
    "resulta evidente",
    "no podemos ignorar",
    "hay que reconocer",
]

COUNTRY_KEYWORDS: Dict[str, List[str]] = {
    "cuba": ["cuba", "habana", "cubano"],
    "venezuela": ["venezuela", "caracas", "venezolano"],
    "usa": ["estados unidos", "eeuu", "usa", "washington"],
    "méxico": ["méxico", "mexico", "mexicano"],
    "españa": ["españa", "spanish", "español"],
}

_PERSON_RE = re.compile(
    r"\b([A-ZÑÁÉÍÓÚ][a-zñáéíóúü]+(?:\s+(?:de|del|la|los|y)?\s*[A-ZÑÁÉÍÓÚ][a-zñáéíóúü]+)*)\b"
)
_NUMBER_RE = re.compile(r"\b\d+(?:[.,]\d+)?(?:\s*%|\s*millones?|\s*mil(?:es)?|\s*dólares?|\s*usd)?\b")
_DATE_RE = re.compile(r"\b\d{1,2}\s+de\s+\w+|\b\w+\s+\d{4}\b|\b\d{4}-\d{2}-\d{2}\b")
_H2_RE = re.compile(r"^##\s+.+$", re.MULTILINE)


def _get(topic: Any, *names: str, default: Any = None) -> Any:
    for name in names:
        value = topic.get(name) if isinstance(topic, Mapping) else getattr(topic, name, None)
        if value not in (None, ""):
            return value
    return default


# Entidades
# =========


def extract_entities(topic: Any) -> Dict[str, Any]:
    """NER simplificado sobre título y resumen del tema."""
    title = _get(topic, "titulo_sugerido", "title", default="")
    summary = _get(topic, "resumen_breve", "summary", default="")
    full_text = f"{title} {summary}".lower()
    sources = _get(topic, "fuentes_top", default=[]) or []

    people: List[str] = []
    for match in _PERSON_RE.finditer(title):
        name = match.group(1)
        if name not in people:
            people.append(name)
    people = [p for p in people[:5] if len(p) > 3]

    countries = [
        country
        for country, keywords in COUNTRY_KEYWORDS.items()
        if any(keyword in full_text for keyword in keywords)
    ]

    return {
        "people": people,
        "countries": countries,
        "has_numeric_data": bool(_NUMBER_RE.search(full_text)),
        "has_dates": bool(_DATE_RE.search(full_text)),
        "has_quotes": '"' in full_text or any(v in full_text for v in ("declaró", "afirmó", "dijo")),
        "source_count": len(sources),
        "source_authorities": ", ".join(str(s.get("medio", "")) for s in sources),
    }


# Prompts
# =======


def _structure_instructions(mode: str) -> str:
    if mode == "factual":
        headings = "\n".join(f"{i}. {s.heading}" for i, s in enumerate(REQUIRED_SECTIONS_FACTUAL, 1))
        return (
            "ESTRUCTURA OBLIGATORIA de contenidoMarkdown (si no se cumple, el artículo se rechaza):\n"
            f"{headings}\n"
            "- Las tres primeras secciones son prosa de 2-3 párrafos, sin viñetas.\n"
            '- "Datos importantes" es la única sección con viñetas ("- ").\n'
            '- Si no hay datos: "- No se han divulgado datos oficiales adicionales."\n'
            "- No cambies los títulos, no añadas secciones extra (Cierre, Conclusión).\n"
            "- Nunca incluyas secciones de verificaciones ni de prompt de imagen.\n"
            "- Cada párrafo aporta información nueva; no repitas ideas entre secciones."
        )
    headings = "\n".join(OPINION_SECTIONS)
    return (
        "ESTRUCTURA OBLIGATORIA de contenidoMarkdown (todas las secciones en prosa):\n"
        f"{headings}\n"
        "- Cada sección aporta una idea nueva que no exista en las anteriores."
    )


LECTURA_VIVA_INSTRUCTIONS = (
    'FORMATO "Lectura Viva":\n'
    "- Divide el contenido en 5-7 bloques con subtítulo ### y un emoji temático.\n"
    "- Inserta una cita destacada en blockquote cada 2 bloques.\n"
    "- Cierra con un llamado a la acción y una sección breve ### Para reflexionar.\n"
    "- Párrafos de 4-5 líneas como máximo; 800-1200 palabras en total."
)


def build_system_prompt(mode: str = "factual", format_style: str = "standard") -> str:
    allowed = ", ".join(ALLOWED_CATEGORIES)
    base = (
        f'Eres "Redactor IA" de {SITE_NAME}, medio editorial con enfoque en Cuba y Latinoamérica.\n\n'
        "REGLAS CRÍTICAS:\n"
        '1. El campo "titulo" es obligatorio, específico y optimizado para SEO.\n'
        "2. No inventes hechos, cifras, citas o eventos que no estén en las fuentes.\n"
        '3. Indica roles y cargos al mencionar personas (ej: "María Pérez, ministra de economía").\n'
        '4. Sin información suficiente usa "según fuentes disponibles".\n'
        "5. Devuelve SOLO JSON válido con el esquema indicado.\n\n"
        "HECHOS FUTUROS: nunca los presentes como confirmados. Proyectos y planes van en "
        'condicional ("podría", "tiene previsto", "se proyecta"); los impactos se formulan '
        "como posibles o estimados. Título y bajada cumplen las mismas reglas.\n\n"
        f"CATEGORÍAS PERMITIDAS (elige UNA): {allowed}\n"
        'Evita "General" salvo que no haya señales claras.'
    )

    if mode == "factual":
        body = (
            "MODO: FACTUAL (noticia objetiva, sin opiniones del medio ni adjetivos subjetivos).\n"
            f"{_structure_instructions('factual')}\n"
            "LONGITUD: mínimo 3000 caracteres en contenidoMarkdown (800-1200 palabras)."
        )
        content_hint = "MÍNIMO 3000 caracteres con las 4 secciones"
    else:
        body = (
            "MODO: OPINIÓN (voz editorial crítica, respetuosa, intensidad 3/5; primera "
            "persona del plural; crítica al poder, nunca a personas comunes).\n"
            f"{_structure_instructions('opinion')}\n"
            "LONGITUD: 600-900 palabras."
        )
        content_hint = "600-900 palabras con la estructura completa"

    format_block = f"\n\n{LECTURA_VIVA_INSTRUCTIONS}" if format_style == "lectura_viva" else ""
    schema = (
        "ESQUEMA JSON (un único objeto, sin texto alrededor ni comas finales):\n"
        "{\n"
        '  "titulo": "string",\n'
        '  "bajada": "string (2-3 líneas: qué, dónde, quién)",\n'
        f'  "categoria": "UNA de [{allowed}]",\n'
        '  "etiquetas": ["3-5 strings"],\n'
        f'  "contenidoMarkdown": "string ({content_hint})",\n'
        '  "verifications": [{"hecho": "string", "fuente": "src_N"}],\n'
        '  "promptsImagen": {"principal": "string", "opcional": "string"}\n'
        "}"
    )
    return f"{base}\n\n{body}{format_block}\n\n{schema}"


def build_enhanced_input(
    topic: Any,
    mode: str = "factual",
    format_style: str = "standard",
    min_sources: int = 2,
) -> Dict[str, Any]:
    """Entrada estructurada para el modelo: tema, fuentes, entidades y política."""
    entities = extract_entities(topic)
    summary = _get(topic, "resumen_breve", default="") or ""

    sources = []
    for index, source in enumerate(_get(topic, "fuentes_top", default=[]) or []):
        fecha = source.get("fecha")
        sources.append(
            {
                "id": f"src_{index}",
                "url": source.get("url"),
                "medio": source.get("medio") or "Fuente desconocida",
                "titulo": source.get("titulo") or "",
                "fecha": str(fecha)[:10] if fecha else "fecha no disponible",
                "content_snippet": (source.get("snippet") or summary)[:SNIPPET_CHARS],
            }
        )

    context: List[str] = []
    if entities["people"]:
        context.append(f"Personas mencionadas: {', '.join(entities['people'])}")
    if entities["countries"]:
        context.append(f"Países relevantes: {', '.join(entities['countries'])}")
    if entities["has_numeric_data"]:
        context.append("El tema incluye datos numéricos: menciónalos con precisión")
    if entities["has_quotes"]:
        context.append("Hay declaraciones relevantes: inclúyelas con atribución")
    if entities["source_count"] < 2:
        context.append("⚠️ Pocas fuentes disponibles. Evita afirmaciones absolutas.")

    return {
        "mode": mode,
        "formatStyle": format_style,
        "topicId": _get(topic, "id"),
        "tema": _get(topic, "titulo_sugerido", "title", default=""),
        "resumen": summary,
        "locale": "es",
        "categoriaPreferida": _get(topic, "categoria_sugerida"),
        "targetLength": TARGET_LENGTH.get(mode, 1000),
        "entitiesDetected": {
            "people": entities["people"],
            "countries": entities["countries"],
            "hasNumericData": entities["has_numeric_data"],
            "hasDates": entities["has_dates"],
            "hasQuotes": entities["has_quotes"],
        },
        "sources": sources,
        "sourceAuthorities": entities["source_authorities"],
        "additionalContext": "\n".join(context),
        "policy": {
            "require_min_sources": min_sources,
            "require_citations_for_facts": True,
            "mark_opinion_clearly": mode == "opinion",
            "verify_numeric_data": entities["has_numeric_data"],
            "require_role_attribution": bool(entities["people"]),
        },
    }


def build_expand_prompt(inputs: Mapping[str, Any], content_length: int, min_chars: int = 3000) -> str:
    return (
        f"{json.dumps(inputs, ensure_ascii=False, indent=2, default=str)}\n\n"
        f"IMPORTANTE: El contenido anterior fue demasiado corto ({content_length} caracteres).\n"
        f"Amplía el artículo a mínimo {min_chars} caracteres manteniendo:\n"
        "- La estructura completa de secciones obligatorias\n"
        "- Contexto histórico y social verificable\n"
        "- Datos y cifras de las fuentes\n"
        "- Sin inventar información\n"
        '- Más desarrollo en "Por qué es importante"'
    )


# Validación
# ==========


def validate_content_quality(draft: Mapping[str, Any], mode: str = "factual") -> Dict[str, List[str]]:
    errors: List[str] = []
    warnings: List[str] = []

    titulo = (draft.get("titulo") or "").strip()
    contenido = draft.get("contenidoMarkdown") or ""
    lowered = contenido.lower()

    if len(titulo) < 10:
        errors.append("Título demasiado corto o ausente")
    if len(contenido) < 100:
        errors.append("Contenido demasiado corto (mínimo 100 caracteres)")
    if not (draft.get("categoria") or "").strip():
        warnings.append("Categoría ausente")

    if mode == "factual":
        if any(phrase in lowered for phrase in OPINION_PHRASES):
            warnings.append("FACTUAL contiene frases de opinión: revisar neutralidad")
        if "por qué es importante" not in lowered and "por qué importa" not in lowered:
            warnings.append('FACTUAL debería incluir la sección "Por qué es importante"')
    elif mode == "opinion":
        if not any(phrase in lowered for phrase in STANCE_PHRASES):
            warnings.append("OPINIÓN parece demasiado neutral")
        if "?" not in lowered or lowered.rfind("?") <= len(lowered) * 0.7:
            warnings.append("OPINIÓN debería cerrar con una pregunta reflexiva")

    if len(draft.get("bajada") or "") < 50:
        warnings.append("Bajada muy corta (recomendado: más de 50 caracteres)")
    etiquetas = draft.get("etiquetas")
    if not isinstance(etiquetas, list) or len(etiquetas) < 2:
        warnings.append("Pocas etiquetas (recomendado: al menos 3)")

    return {"errors": errors, "warnings": warnings}


@dataclass
class StructureReport:
    missing: List[str]
    present: List[str]
    h2_count: int
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.missing


def validate_structure(markdown: Optional[str]) -> StructureReport:
    if not markdown:
        return StructureReport(
            missing=[s.id for s in REQUIRED_SECTIONS_FACTUAL],
            present=[],
            h2_count=0,
            warnings=["contenido vacío"],
        )

    present = [s.id for s in REQUIRED_SECTIONS_FACTUAL if s.pattern.search(markdown)]
    missing = [s.id for s in REQUIRED_SECTIONS_FACTUAL if s.id not in present]
    headings = _H2_RE.findall(markdown)
    warnings: List[str] = []
    if len(headings) < len(REQUIRED_SECTIONS_FACTUAL):
        warnings.append(f"Solo {len(headings)} secciones H2 detectadas (mínimo requerido: 4)")
    extra = [h for h in headings if not any(s.pattern.search(h) for s in REQUIRED_SECTIONS_FACTUAL)]
    if extra:
        warnings.append(f"Secciones extra detectadas: {', '.join(extra)}")
    return StructureReport(missing=missing, present=present, h2_count=len(headings), warnings=warnings)


@dataclass
class AutocorrectResult:
    ok: bool
    draft: str
    corrections: List[str]
    missing: List[str]
    reject_reason: Optional[str] = None


def strict_validate_and_autocorrect(markdown: str, model: str = "unknown") -> AutocorrectResult:
    """Completa hasta dos secciones faltantes; con más, rechaza."""
    report = validate_structure(markdown)
    logger.debug(f"Estructura ({model}): presentes={report.present} faltantes={report.missing}")

    if report.valid:
        return AutocorrectResult(ok=True, draft=markdown, corrections=[], missing=[])

    if len(report.missing) > MAX_MISSING_SECTIONS:
        reason = (
            f"Demasiadas secciones faltantes ({len(report.missing)}/{len(REQUIRED_SECTIONS_FACTUAL)}): "
            f"{', '.join(report.missing)}. Modelo: {model}"
        )
        logger.error(f"❌ Estructura rechazada: {reason}")
        return AutocorrectResult(
            ok=False, draft=markdown, corrections=[], missing=report.missing, reject_reason=reason
        )

    corrected = (markdown or "").rstrip()
    corrections = []
    for section in REQUIRED_SECTIONS_FACTUAL:
        if section.id in report.missing:
            corrected += f"\n\n{section.heading}\n\n{section.placeholder}\n"
            corrections.append(f'Sección "{section.id}" añadida con texto de reserva')
    logger.warning(f"⚠️ Estructura autocorregida: {', '.join(report.missing)}")
    return AutocorrectResult(ok=True, draft=corrected, corrections=corrections, missing=report.missing)


# Markdown → HTML
# ===============

MARKDOWN_EXTENSIONS = ["sane_lists"]


def markdown_to_html(text: Optional[str]) -> str:
    """
    Convierte el Markdown del modelo a HTML con Python-Markdown.

    El HTML crudo que traiga el texto se escapa antes de convertir: el
    modelo no puede inyectar etiquetas en el artículo publicado.
    """
    if not text or not text.strip():
        return ""
    escaped = html.escape(text, quote=False)
    return render_markdown(escaped, extensions=MARKDOWN_EXTENSIONS, output_format="html").strip()
