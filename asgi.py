"""
asgi.py -- ASGI entry point for the auth service.

Run with:  uvicorn asgi:app --host 0.0.0.0 --port 3001

Kept separate from api/main.py so process managers have one stable import
path regardless of how the api/ package is organised internally.
"""

from api.main import app

__all__ = ["app"]
