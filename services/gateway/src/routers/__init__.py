"""Gateway API Routers."""

from . import automation, health

__all__ = ["health", "automation"]
