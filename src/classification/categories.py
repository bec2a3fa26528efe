# src/classification/categories.py
# Taxonomía cerrada de categorías del Redactor IA
# ===============================================

"""
Closed category taxonomy used by the ensemble classifier.

Each category carries synonyms (rule matching) and a description
(term-frequency similarity). The ensemble weights and thresholds live here
so the classifier and the draft generator agree on them.
"""

from typing import Dict, List

GENERAL = "General"

ALLOWED_CATEGORIES: List[str] = [
    "General",
    "Política",
    "Economía",
    "Internacional",
    "Socio político",
    "Tecnología",
    "Tendencia",
]

CATEGORY_SYNONYMS: Dict[str, List[str]] = {
    "Tecnología": [
        # IA y ML
        "IA", "inteligencia artificial", "AI", "ChatGPT", "GPT", "OpenAI", "Claude", "Gemini", "Bard",
        "machine learning", "deep learning", "redes neuronales", "neural network", "LLM",
        "modelo de lenguaje",
        # Empresas
        "tecnológico", "tech", "startup", "startups", "Silicon Valley", "silicon",
        "Apple", "Google", "Microsoft", "Meta", "Tesla", "SpaceX", "Amazon", "Nvidia", "AMD",
        # Software
        "software", "hardware", "algoritmo", "código", "programación", "desarrollo",
        "aplicación", "app", "plataforma", "cloud", "nube", "SaaS", "API",
        # Cripto
        "blockchain", "cripto", "criptomoneda", "Bitcoin", "BTC", "Ethereum", "ETH", "Web3", "NFT",
        "DeFi", "Binance", "Coinbase", "Solana", "Dogecoin",
        # Ciberseguridad
        "ciberseguridad", "hack", "hacker", "breach", "vulnerabilidad", "ransomware", "malware",
        "phishing", "encryption", "cifrado", "privacidad", "seguridad informática",
        # Dispositivos
        "iPhone", "Android", "Samsung", "Pixel", "iPad", "MacBook", "smartwatch", "wearable",
        "innovación", "digital", "internet", "computación", "datos", "data", "analytics",
        "ciencia de datos", "robotica", "automatización", "IoT", "internet de las cosas",
        "5G", "wifi", "banda ancha", "fibra óptica",
    ],
    "Política": [
        "gobierno", "parlamento", "elecciones", "decreto", "ministerio", "partido",
        "sanciones", "diplomacia", "congreso", "ley", "legislación", "poder ejecutivo",
        "presidente", "ministro", "político", "reforma", "constitución", "votación",
        "campaña", "candidato", "oposición", "coalición", "senado", "diputado",
        "asamblea", "referendum", "política pública", "gestión pública", "administración",
        "decreto-ley", "normativa", "regulación gubernamental",
    ],
    "Economía": [
        "inflación", "PIB", "mercado", "finanzas", "comercio", "banca", "precio",
        "impuesto", "fiscal", "monetario", "inversión", "bolsa", "divisa", "dólar",
        "euro", "deuda", "crédito", "déficit", "superávit", "exportación", "importación",
        "aranceles", "crecimiento económico", "recesión", "desempleo", "empleo",
        "salario", "producción", "industria", "consumo", "ahorro", "tasas", "interés",
        "banco central", "financiero", "empresarial", "negocios", "economista",
    ],
    "Internacional": [
        "ONU", "EE.UU.", "Estados Unidos", "Unión Europea", "relaciones exteriores",
        "embajada", "tránsito internacional", "conflicto internacional", "tratado",
        "OTAN", "acuerdo internacional", "cumbre", "G7", "G20", "relaciones bilaterales",
        "multilateral", "geopolítica", "política exterior", "cancillería", "diplomático",
        "extranjero", "mundial", "global", "internacional", "frontera", "migración internacional",
        "alianza", "pacto", "cooperación internacional", "tensiones", "crisis global",
    ],
    "Socio político": [
        "protesta", "derechos humanos", "ONG", "movilización", "censura", "represión",
        "migración", "sociedad civil", "manifestación", "activismo", "disidencia",
        "libertad de expresión", "prisionero político", "persecución", "exilio",
        "refugiado", "asilo", "discriminación", "desigualdad", "justicia social",
        "movimiento social", "reclamo", "denuncia", "organización comunitaria",
        "participación ciudadana", "democracia", "autoritarismo", "opresión",
        "derecho civil", "libertades", "organización social",
    ],
    "Tendencia": [
        # Viralidad
        "viral", "trending", "tendencia", "trend", "moda", "fenómeno", "fenómeno viral",
        "viraliza", "se vuelve viral", "rompe internet", "explosión", "boom", "arrasó",
        "millones de vistas", "récord", "sensación", "furor", "éxito viral", "impacto viral",
        # Redes sociales
        "redes sociales", "TikTok", "Instagram", "Twitter", "X", "Facebook", "YouTube",
        "Snapchat", "Threads", "Telegram", "Discord", "Reddit", "Twitch", "LinkedIn",
        "WhatsApp", "stories", "reels", "shorts",
        # Creadores
        "influencer", "youtuber", "tiktoker", "streamer", "creator", "content creator",
        "celebridad", "famoso", "celebrity", "personalidad", "figura pública",
        "hashtag", "trending topic", "lo más visto", "top trending", "compartido",
        "engagement", "likes", "views", "vistas", "seguidores", "followers",
        # Entretenimiento
        "entretenimiento", "cultura pop", "pop culture", "meme", "memes",
        "challenge", "reto", "challenge viral", "dance challenge",
        "filtro", "filter", "efecto", "sticker", "GIF",
        "streaming", "stream", "live", "en vivo", "transmisión",
        "Netflix", "Disney+", "HBO", "Amazon Prime", "Spotify",
        "podcast", "serie", "película", "documental", "reality",
        # Gaming
        "gaming", "gamer", "videojuego", "esports", "gameplay",
        "PlayStation", "Xbox", "Nintendo", "Steam", "Epic Games",
        "trailer", "lanzamiento", "beta", "leak", "filtrado",
        # Incidentes
        "polémica", "controversia", "escándalo", "buzz", "noticia viral",
        "outage", "caída", "fallo masivo", "error viral", "glitch",
        "cultura digital", "online", "web",
        "contenido viral", "video viral", "imagen viral", "post viral",
    ],
    "General": [],
}

CATEGORY_DESCRIPTIONS: Dict[str, str] = {
    "Tecnología": (
        "Innovación tecnológica de alto impacto: inteligencia artificial (ChatGPT, OpenAI, Claude), "
        "criptomonedas (Bitcoin, Ethereum, Web3), ciberseguridad (hacks, brechas de datos), "
        "dispositivos (iPhone, Android), empresas tech (Apple, Google, Tesla, Meta, Nvidia), "
        "software, hardware, startups disruptivas, blockchain, cloud computing y transformación digital."
    ),
    "Política": (
        "Gobierno, leyes, partidos políticos, decisiones políticas, administración pública, "
        "elecciones, reformas legislativas y gestión gubernamental."
    ),
    "Economía": (
        "Mercados financieros, finanzas, precios, empleo, impuestos, comercio, indicadores "
        "económicos, inflación, PIB, banca y negocios."
    ),
    "Internacional": (
        "Relaciones exteriores, geopolítica, actores y eventos fuera del país, diplomacia, "
        "tratados internacionales, conflictos globales y cooperación multilateral."
    ),
    "Socio político": (
        "Dinámica social con dimensión política: protestas, derechos humanos, sociedad civil, "
        "movilizaciones, represión, migración y activismo."
    ),
    "Tendencia": (
        "Contenido viral de alto impacto en redes sociales: TikTok, Instagram, YouTube, Twitter/X. "
        "Incluye influencers, celebridades, memes virales, challenges, escándalos digitales, "
        "fenómenos de cultura pop, streaming (Netflix, Spotify), gaming (esports, lanzamientos), "
        "outages masivos, tendencias de entretenimiento, videos con millones de vistas, "
        "controversias virales y cualquier tema que rompe internet o domina trending topics."
    ),
    "General": (
        "Miscelánea sin predominio temático claro, contenido diverso o que abarca múltiples "
        "categorías sin enfoque principal."
    ),
}

ENSEMBLE_WEIGHTS: Dict[str, float] = {"rules": 0.35, "llm": 0.40, "similarity": 0.25}
ENSEMBLE_WEIGHTS_NO_LLM: Dict[str, float] = {"rules": 0.55, "llm": 0.0, "similarity": 0.45}

THRESHOLDS: Dict[str, float] = {
    "high_confidence": 0.70,
    "avoid_general": 0.55,
    "low_confidence": 0.50,
}


def is_valid_category(category: str) -> bool:
    return category in ALLOWED_CATEGORIES
