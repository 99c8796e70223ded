"""Shared fixtures: an in-memory database and builders for test data."""
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskmanager_core import models, schemas
from taskmanager_core.models import Base, TaskState, UserRole
from taskmanager_core.permissions import Actor
from taskmanager_core.task_service import AuthorizedTaskService


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def as_actor(user: models.User) -> Actor:
    return Actor(id=user.id, roles=user.roles, department_id=user.department_id)


class Builder:
    """Creates persisted departments, users, projects and tasks for tests."""

    def __init__(self, db):
        self.db = db
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def department(self, name=None) -> models.Department:
        department = models.Department(name=name or f"Department {self._next()}")
        self.db.add(department)
        self.db.commit()
        return department

    def user(self, *roles: UserRole, department=None, email=None) -> models.User:
        n = self._next()
        user = models.User(
            first_name="Test",
            last_name=f"User{n}",
            email=email or f"user{n}@example.com",
            department_id=department.id if department is not None else None,
        )
        user.role_grants = [models.UserRoleGrant(role=role) for role in (roles or (UserRole.TEAM_MEMBER,))]
        self.db.add(user)
        self.db.commit()
        return user

    def actor(self, *roles: UserRole, department=None) -> Actor:
        return as_actor(self.user(*roles, department=department))

    def project(self, department, title=None, members=()) -> models.Project:
        project = models.Project(
            title=title or f"Project {self._next()}",
            department_id=department.id,
        )
        project.team_members = list(members)
        self.db.add(project)
        self.db.commit()
        return project

    def task(self, project, actor: Actor, title=None, **fields) -> models.Task:
        """Create a task through the service so the creation entry is recorded."""
        data = schemas.TaskCreate(
            title=title or f"Task {self._next()}",
            user_story="As a user I want things",
            acceptance_criteria="Things happen",
            project_id=project.id,
            **fields,
        )
        return AuthorizedTaskService(self.db).create_task(actor, data)

    def advance(self, task, actor: Actor, *states: TaskState) -> models.Task:
        """Walk a task through states, supplying a reason for every step."""
        service = AuthorizedTaskService(self.db)
        for state in states:
            task = service.update_task_state(actor, task.id, state, reason=f"moving to {state.value}")
        return task


@pytest.fixture
def build(db):
    return Builder(db)


@pytest.fixture
def dept(build):
    return build.department("Engineering")


@pytest.fixture
def other_dept(build):
    return build.department("Marketing")


@pytest.fixture
def admin(build):
    return build.actor(UserRole.ADMIN)


@pytest.fixture
def pgm(build):
    return build.actor(UserRole.PROJECT_GROUP_MANAGER)


@pytest.fixture
def pm(build, dept):
    return build.actor(UserRole.PROJECT_MANAGER, department=dept)


@pytest.fixture
def team_leader(build, dept):
    return build.actor(UserRole.TEAM_LEADER, department=dept)


@pytest.fixture
def team_member(build, dept):
    return build.actor(UserRole.TEAM_MEMBER, department=dept)


@pytest.fixture
def outsider(build, other_dept):
    """Team leader of another department."""
    return build.actor(UserRole.TEAM_LEADER, department=other_dept)


@pytest.fixture
def project(build, dept):
    return build.project(dept, title="Website relaunch")


@pytest.fixture
def task(build, project, team_leader):
    return build.task(project, team_leader, title="Design landing page")


@pytest.fixture
def actor_of():
    """Turn a persisted user into the Actor acting on their behalf."""
    return as_actor
