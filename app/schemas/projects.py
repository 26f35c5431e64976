# File: /app/schemas/projects.py | Version: 1.0 | Title: Project Schemas
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from app.schemas._base import CamelSchema


class ProjectCreate(CamelSchema):
    name: str = Field(max_length=255)
    description: Optional[str] = None


class ProjectUpdate(CamelSchema):
    name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None


class ProjectOut(CamelSchema):
    id: int
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
