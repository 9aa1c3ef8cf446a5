"""HTTP adapter over the UDLF service core."""

from .app import create_app

__all__ = ["create_app"]
