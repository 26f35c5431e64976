# File: /app/routers/projects.py | Version: 1.0 | Title: Projects Router
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.crud import projects as crud_projects
from app.db.session import get_db
from app.schemas.projects import ProjectCreate, ProjectOut, ProjectUpdate
from app.security import get_current_owner_id

router = APIRouter(prefix="/projects", tags=["Projects"])


@router.get("", response_model=List[ProjectOut])
def list_projects(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    return crud_projects.list_projects(db, owner_id)


@router.post("", response_model=ProjectOut)
def create_project(
    data: ProjectCreate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    return crud_projects.create_project(db, owner_id, data)


@router.put("/{project_id}", response_model=ProjectOut)
def update_project(
    project_id: int,
    data: ProjectUpdate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    return crud_projects.update_project(db, owner_id, project_id, data)


@router.delete("/{project_id}")
def delete_project(
    project_id: int,
    delete_tables: bool = Query(default=False, alias="deleteTables"),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    # deleteTables=true drops the project's tables; otherwise they become uncategorized
    crud_projects.delete_project(db, owner_id, project_id, delete_tables=delete_tables)
    return {"success": True}
