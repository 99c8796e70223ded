"""Departments API endpoints."""
import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ... import schemas
from ...database import get_db
from ...department_service import DepartmentService
from ...permissions import Actor
from ..dependencies import get_current_actor

logger = logging.getLogger("taskmanager-core.api.departments")

router = APIRouter(tags=["departments"])


def get_department_service(db: Session = Depends(get_db)) -> DepartmentService:
    return DepartmentService(db)


@router.post("/", response_model=schemas.DepartmentResponse, status_code=201)
def create_department(
    data: schemas.DepartmentCreate,
    actor: Actor = Depends(get_current_actor),
    service: DepartmentService = Depends(get_department_service),
):
    """
    Create a department (ADMIN only).

    - **name**: Unique name, 2-100 characters
    - **description**: Optional, up to 500 characters
    """
    return service.create_department(actor, data)


@router.get("/", response_model=list[schemas.DepartmentResponse])
def list_departments(
    actor: Actor = Depends(get_current_actor),
    service: DepartmentService = Depends(get_department_service),
):
    return service.list_departments(actor)


@router.get("/by-name/{name}", response_model=schemas.DepartmentResponse)
def get_department_by_name(
    name: str,
    actor: Actor = Depends(get_current_actor),
    service: DepartmentService = Depends(get_department_service),
):
    return service.get_department_by_name(actor, name)


@router.get("/{department_id}", response_model=schemas.DepartmentResponse)
def get_department(
    department_id: int,
    actor: Actor = Depends(get_current_actor),
    service: DepartmentService = Depends(get_department_service),
):
    return service.get_department(actor, department_id)


@router.put("/{department_id}", response_model=schemas.DepartmentResponse)
def update_department(
    department_id: int,
    data: schemas.DepartmentUpdate,
    actor: Actor = Depends(get_current_actor),
    service: DepartmentService = Depends(get_department_service),
):
    return service.update_department(actor, department_id, data)


@router.delete("/{department_id}", status_code=204)
def delete_department(
    department_id: int,
    actor: Actor = Depends(get_current_actor),
    service: DepartmentService = Depends(get_department_service),
):
    """Soft-delete a department. Refused while users or projects still belong to it."""
    service.delete_department(actor, department_id)
    return Response(status_code=204)
