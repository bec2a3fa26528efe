"""API HTTP del Redactor IA."""

from .api import ServiceContainer, create_app

__all__ = ["ServiceContainer", "create_app"]
