# File: /app/routers/__init__.py | Version: 2.0 | Path: /app/routers/__init__.py
"""
Router package exports.

Keeping these explicit helps static analyzers and avoids surprises
when importing submodules like: `from app.routers import tables as tables_router`.
"""
from . import auth, health, projects, query, search, tables, upload

__all__ = ["auth", "health", "projects", "query", "search", "tables", "upload"]
