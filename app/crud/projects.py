# File: /app/crud/projects.py | Version: 1.0 | Title: CRUD helpers for Projects
from __future__ import annotations

import logging
from typing import List

from sqlalchemy.orm import Session

from app.core import errors
from app.models import Project, TableMeta
from app.schemas.projects import ProjectCreate, ProjectUpdate

log = logging.getLogger(__name__)


def get_owned_project(db: Session, owner_id: str, project_id: int) -> Project:
    project = db.get(Project, project_id)
    if not project or str(project.owner_id) != str(owner_id):
        raise errors.NotFoundOrForbidden("Project not found")
    return project


def list_projects(db: Session, owner_id: str) -> List[Project]:
    return (
        db.query(Project)
        .filter(Project.owner_id == str(owner_id))
        .order_by(Project.created_at.desc(), Project.id.desc())
        .all()
    )


def create_project(db: Session, owner_id: str, data: ProjectCreate) -> Project:
    name = data.name.strip()
    if not name:
        raise errors.ValidationError("Project name is required")
    try:
        project = Project(owner_id=str(owner_id), name=name, description=data.description)
        db.add(project)
        db.commit()
        db.refresh(project)
        return project
    except Exception:
        db.rollback()
        raise


def update_project(db: Session, owner_id: str, project_id: int, data: ProjectUpdate) -> Project:
    project = get_owned_project(db, owner_id, project_id)
    changes = data.model_dump(exclude_unset=True)
    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            raise errors.ValidationError("Project name is required")
        changes["name"] = name
    for field, value in changes.items():
        setattr(project, field, value)
    db.commit()
    db.refresh(project)
    return project


def delete_project(db: Session, owner_id: str, project_id: int, delete_tables: bool = False) -> None:
    """
    Delete a project. Its tables are dropped when ``delete_tables`` is set,
    otherwise they are detached (moved to uncategorized).
    """
    from app.engine import registry  # late import: registry depends on this module

    project = get_owned_project(db, owner_id, project_id)
    tables = db.query(TableMeta).filter(TableMeta.project_id == project.id).all()

    stored_files = []
    with registry.atomic(db):
        for meta in tables:
            if delete_tables:
                stored_files.append(registry.drop_entry(db, meta))
            else:
                meta.project_id = None
        db.flush()
        db.delete(project)
        db.flush()

    for path in stored_files:
        registry.remove_stored_file(path)
    log.info(
        "Deleted project %s (%d tables %s)",
        project_id,
        len(tables),
        "dropped" if delete_tables else "detached",
    )
