# config/sources.py
# Catálogo de fuentes para el Redactor IA
# =======================================

"""
Fuentes que el escáner de temas consulta: feeds RSS conocidos, medios
independientes cubanos usados como respaldo, dominios prioritarios para
NewsAPI y listas de clasificación temprana por dominio.

Cada medio del mapa de autoridad lleva un puntaje 0-100 que alimenta la
métrica "autoridad" del score de impacto.
"""

# Feeds de medios independientes cubanos
# ======================================
# Se usan como respaldo cuando NewsAPI falla en modo Cuba estricto.

CUBAN_INDEPENDENT_FEEDS = {
    "martinoticias": {
        "name": "Martí Noticias",
        "url": "https://www.martinoticias.com/api/epiqq",
        "language": "es",
        "category": "cuba",
    },
    "adncuba": {
        "name": "ADN Cuba",
        "url": "https://adncuba.com/rss.xml",
        "language": "es",
        "category": "cuba",
    },
    "diariodecuba": {
        "name": "Diario de Cuba",
        "url": "https://www.diariodecuba.com/rss.xml",
        "language": "es",
        "category": "cuba",
    },
    "cubanosporelmundo": {
        "name": "Cubanos por el Mundo",
        "url": "https://www.cubanosporelmundo.com/feed/",
        "language": "es",
        "category": "cuba",
    },
}

# Rutas RSS conocidas por dominio (evitan el descubrimiento de feeds)
KNOWN_RSS_FEEDS = {
    "techcrunch.com": "/feed/",
    "theverge.com": "/rss/index.xml",
    "wired.com": "/feed/rss",
    "arstechnica.com": "/rss-feeds/index.xml",
    "engadget.com": "/rss.xml",
    "theregister.com": "/headlines.atom",
    "semafor.com": "/rss.xml",
    "axios.com": "/feeds/feed.rss",
    "theguardian.com": "/rss",
    "bbc.com": "/news/rss.xml",
    "reuters.com": "/tools/rss",
    "apnews.com": "/rss",
    "elpais.com": "/rss/",
    "coindesk.com": "/arc/outboundfeeds/rss/",
    "cointelegraph.com": "/rss",
    "cnet.com": "/rss/news/",
    "xataka.com": "/index.xml",
    "hipertextual.com": "/feed",
}

# Rutas probadas cuando el dominio no está en KNOWN_RSS_FEEDS
RSS_DISCOVERY_PATHS = ["/rss", "/feed", "/rss.xml", "/feed.xml"]

# Dominios en español (activan language=es en NewsAPI modo normal)
HISPANIC_DOMAINS = {
    "elpais.com",
    "xataka.com",
    "hipertextual.com",
    "genbeta.com",
    "elconfidencial.com",
    "elmundo.es",
    "abc.es",
    "lavanguardia.com",
    "martinoticias.com",
    "adncuba.com",
    "diariodecuba.com",
}

# Dominios bien indexados en NewsAPI para el modo Cuba estricto
NEWSAPI_PRIORITY_DOMAINS = [
    "bbc.com",
    "reuters.com",
    "apnews.com",
    "elpais.com",
    "diariodecuba.com",
    "martinoticias.com",
    "adncuba.com",
]

# Medios oficiales que nunca se ingieren
OFFICIAL_BLACKLIST = {
    "granma.cu",
    "trabajadores.cu",
    "cubadebate.cu",
    "prensa-latina.cu",
    "prensalatina.cu",
    "acn.cu",
    "ain.cu",
    "jrebelde.cu",
    "radiohc.cu",
}

# Clasificación temprana por dominio
# ==================================

TECH_DOMAINS = {
    "techcrunch.com",
    "theverge.com",
    "wired.com",
    "xataka.com",
    "hipertextual.com",
    "androidauthority.com",
    "9to5google.com",
    "engadget.com",
    "arstechnica.com",
    "producthunt.com",
}

TREND_DOMAINS = {
    "mashable.com",
    "variety.com",
    "polygon.com",
    "ign.com",
    "gamerant.com",
    "buzzfeed.com",
    "people.com",
    "hollywoodreporter.com",
    "rollingstone.com",
    "cosmopolitan.com",
}

# Medios tech/tendencia que no pasan por el filtro estricto de Cuba
TECH_TREND_BYPASS = [
    "techcrunch.com",
    "theverge.com",
    "wired.com",
    "arstechnica.com",
    "engadget.com",
    "cnet.com",
    "thenextweb.com",
    "venturebeat.com",
    "axios.com",
    "semafor.com",
]

# Autoridad por medio (coincidencia parcial sobre el nombre del medio)
AUTHORITY_MAP = {
    "bbc": 95,
    "reuters": 95,
    "ap": 95,
    "afp": 90,
    "el país": 85,
    "the guardian": 85,
    "cnn": 80,
    "new york times": 90,
    "washington post": 90,
    "cubanet": 85,
    "diario de cuba": 80,
    "14ymedio": 85,
    "cibercuba": 75,
    "martí noticias": 80,
    "granma": 50,
    "cubadebate": 50,
    "prensa latina": 55,
}


def build_known_feed_url(domain):
    """URL del feed conocido de un dominio, o None si hay que descubrirlo."""
    path = KNOWN_RSS_FEEDS.get(domain)
    if path is None:
        return None
    return f"https://{domain}{path}"


def get_feed_sources(domains):
    """
    Convierte una lista de dominios en el formato de fuente que consume
    el colector RSS. Los dominios sin feed conocido reciben las rutas de
    descubrimiento como candidatas.
    """
    sources = {}
    for domain in domains:
        known = build_known_feed_url(domain)
        candidates = [known] if known else [f"https://{domain}{path}" for path in RSS_DISCOVERY_PATHS]
        sources[domain] = {
            "name": domain,
            "url": candidates[0],
            "candidates": candidates,
            "language": "es" if domain in HISPANIC_DOMAINS else "en",
            "category": "whitelist",
        }
    return sources


# Validación de fuentes
# ====================


def validate_sources():
    """Verifica que el catálogo esté bien formado antes de usarlo."""
    for source_id, source_config in CUBAN_INDEPENDENT_FEEDS.items():
        for field in ("name", "url", "language"):
            if field not in source_config:
                raise ValueError(f"Fuente {source_id} le falta el campo {field}")
        if not source_config["url"].startswith(("http://", "https://")):
            raise ValueError(f"URL de {source_id} no es válida: {source_config['url']}")

    for domain, path in KNOWN_RSS_FEEDS.items():
        if not path.startswith("/"):
            raise ValueError(f"Ruta RSS de {domain} debe empezar con '/': {path}")

    for medio, score in AUTHORITY_MAP.items():
        if not 0 <= score <= 100:
            raise ValueError(f"Autoridad de {medio} debe estar entre 0 y 100")

    overlap = OFFICIAL_BLACKLIST.intersection(NEWSAPI_PRIORITY_DOMAINS)
    if overlap:
        raise ValueError(f"Dominios prioritarios en la lista negra: {sorted(overlap)}")

    return True
