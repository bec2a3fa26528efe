"""
Utilidades del Redactor IA.
"""

from .logger import create_module_logger, get_logger, setup_logging

__all__ = [
    "create_module_logger",
    "get_logger",
    "setup_logging",
]
