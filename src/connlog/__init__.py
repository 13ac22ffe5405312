"""
ConnLog - Connection logger

A FastAPI service that records client connection metadata, masks sensitive
fields, appends each connection to a JSON Lines log and notifies chat
webhooks on a best-effort basis.
"""

__version__ = "0.1.0"

from .main import app

__all__ = ["app"]
