"""
asgi.py -- ASGI entry point for the game portal auth service.

Kept separate from api/main.py so deployment tooling has one stable import
path even if further routers (game/category services) are mounted here later.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
