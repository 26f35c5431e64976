# File: /app/models/__init__.py | Version: 2.0 | Title: Models Package Exports
from .core_entities import Project, TableMeta, User

__all__ = [
    "User",
    "Project",
    "TableMeta",
]
