"""Department use cases. Only ADMIN manages departments."""
import logging

from sqlalchemy.orm import Session

from . import crud, models, schemas
from .exceptions import ConflictError, NotFoundError
from .permissions import (
    Action,
    Actor,
    Resource,
    ResourceType,
    department_resource,
    require,
)

logger = logging.getLogger("taskmanager-core.department_service")


class DepartmentService:
    def __init__(self, db: Session):
        self.db = db

    def _get_department_or_404(self, department_id: int) -> models.Department:
        department = crud.get_department(self.db, department_id)
        if not department:
            raise NotFoundError("Department", department_id)
        return department

    def _ensure_name_free(self, name: str, exclude_id=None) -> None:
        if crud.department_name_taken(self.db, name, exclude_id=exclude_id):
            raise ConflictError(
                f"Department with name {name} already exists",
                details={"name": name},
            )

    def create_department(self, actor: Actor, data: schemas.DepartmentCreate) -> models.Department:
        require(actor, Action.MANAGE_DEPARTMENT, Resource(ResourceType.DEPARTMENT))
        self._ensure_name_free(data.name)

        department = crud.create_department(self.db, data)
        self.db.commit()
        self.db.refresh(department)
        logger.info(f"Created department {department.id} '{department.name}'")
        return department

    def update_department(
        self,
        actor: Actor,
        department_id: int,
        data: schemas.DepartmentUpdate,
    ) -> models.Department:
        department = self._get_department_or_404(department_id)
        require(actor, Action.MANAGE_DEPARTMENT, department_resource(department))

        if data.name is not None and data.name != department.name:
            self._ensure_name_free(data.name, exclude_id=department.id)

        changed = crud.apply_update(department, data, fields={"name", "description"})
        if changed:
            self.db.commit()
            self.db.refresh(department)
            logger.info(f"Updated department {department.id} fields {changed}")
        return department

    def get_department(self, actor: Actor, department_id: int) -> models.Department:
        department = self._get_department_or_404(department_id)
        require(actor, Action.VIEW_DEPARTMENT, department_resource(department))
        return department

    def get_department_by_name(self, actor: Actor, name: str) -> models.Department:
        department = crud.get_department_by_name(self.db, name)
        if not department:
            raise NotFoundError("Department", name)
        require(actor, Action.VIEW_DEPARTMENT, department_resource(department))
        return department

    def list_departments(self, actor: Actor) -> list[models.Department]:
        require(actor, Action.VIEW_DEPARTMENT, Resource(ResourceType.DEPARTMENT))
        return crud.get_departments(self.db)

    def delete_department(self, actor: Actor, department_id: int) -> None:
        """
        Soft-delete a department.

        Raises:
            ConflictError: Active users or projects still belong to it
        """
        department = self._get_department_or_404(department_id)
        require(actor, Action.MANAGE_DEPARTMENT, department_resource(department))

        if crud.department_in_use(self.db, department.id):
            raise ConflictError(
                "Department cannot be deleted as it has associated users/projects",
                details={"department_id": department.id},
            )

        department.is_active = False
        self.db.commit()
        logger.info(f"Deleted department {department_id}")
