"""
FastAPI server module for AskRelay.

Exposes the ask operation, health check and event feed over HTTP.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]
