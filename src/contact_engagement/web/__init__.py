"""Web interface for contact engagement analysis."""

from .app import create_app

__all__ = ["create_app"]
