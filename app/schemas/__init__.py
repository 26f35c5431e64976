# File: /app/schemas/__init__.py | Version: 2.0 | Path: /app/schemas/__init__.py
from . import filters, projects, query, tables, user

__all__ = ["filters", "projects", "query", "tables", "user"]
