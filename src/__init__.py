"""
Paquete principal del Redactor IA.

Contiene los módulos funcionales del sistema: escaneo de fuentes,
generación y revisión de borradores, publicación, estadísticas,
almacenamiento y utilidades.
"""

from config.version import PROJECT_VERSION, PYTHON_REQUIRES_SPECIFIER

from .storage import DatabaseManager, get_database_manager
from .utils import create_module_logger, get_logger, setup_logging

__version__ = PROJECT_VERSION
__description__ = "Redacción asistida por IA: del escaneo de fuentes a la publicación"

__package_info__ = {
    "name": "redactor_ia",
    "version": __version__,
    "description": __description__,
    "author": "Redactor IA Team",
    "license": "MIT",
    "python_requires": PYTHON_REQUIRES_SPECIFIER,
}

__all__ = [
    "DatabaseManager",
    "create_module_logger",
    "get_database_manager",
    "get_logger",
    "setup_logging",
]
