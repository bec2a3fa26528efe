"""
Paquete de storage del Redactor IA.

Gestiona persistencia de datos, modelos y conexión a la base de datos.
"""

from .database import get_database_manager, DatabaseManager
from .models import (
    Base,
    AiConfig,
    AiDraft,
    AiTopic,
    CostLog,
    NewsPost,
    ScanLog,
    get_model_info,
)


def get_database_health():
    """Obtiene estadísticas de salud de la base de datos."""
    db_manager = get_database_manager()
    return db_manager.get_health_status()


__all__ = [
    "get_database_manager",
    "DatabaseManager",
    "Base",
    "AiConfig",
    "AiDraft",
    "AiTopic",
    "CostLog",
    "NewsPost",
    "ScanLog",
    "get_model_info",
    "get_database_health",
]
