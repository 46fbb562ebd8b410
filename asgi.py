"""
asgi.py -- ASGI entry point for the Login API.

Run with:  uvicorn asgi:app --reload

Kept separate from api/main.py so process managers and the test suite can
import the application object from a stable, framework-neutral path.
"""

from api.main import app

__all__ = ["app"]
