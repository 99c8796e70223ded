"""Tests for the role- and department-scoped policy."""
from uuid import uuid4

import pytest
from taskmanager_core.models import UserRole
from taskmanager_core.permissions import (
    POLICY,
    Action,
    Actor,
    PermissionDeniedError,
    Resource,
    ResourceType,
    evaluate,
    require,
    visible,
)

DEPT = 1
OTHER_DEPT = 2

TASK = Resource(ResourceType.TASK, id="task-1", department_id=DEPT)
PROJECT = Resource(ResourceType.PROJECT, id="project-1", department_id=DEPT)


def make_actor(*roles, department_id=DEPT, actor_id=None):
    return Actor(id=actor_id or uuid4(), roles=frozenset(roles), department_id=department_id)


class TestActor:
    def test_actor_requires_a_role(self):
        with pytest.raises(ValueError):
            Actor(id=uuid4(), roles=frozenset())

    def test_roles_normalised_to_frozenset(self):
        actor = Actor(id=uuid4(), roles={UserRole.ADMIN})
        assert isinstance(actor.roles, frozenset)

    def test_bypass_roles(self):
        assert make_actor(UserRole.ADMIN).is_bypass
        assert make_actor(UserRole.PROJECT_GROUP_MANAGER).is_bypass
        assert not make_actor(UserRole.PROJECT_MANAGER).is_bypass


class TestBypass:
    """ADMIN and PROJECT_GROUP_MANAGER ignore department scoping."""

    @pytest.mark.parametrize("role", [UserRole.ADMIN, UserRole.PROJECT_GROUP_MANAGER])
    @pytest.mark.parametrize("department_id", [None, DEPT, OTHER_DEPT])
    def test_never_denied_for_department_mismatch(self, role, department_id):
        actor = make_actor(role, department_id=department_id)
        for action in (
            Action.MANAGE_TASK,
            Action.VIEW_TASK,
            Action.VIEW_TASK_HISTORY,
            Action.UPDATE_TASK_STATE,
            Action.MANAGE_PROJECT,
            Action.VIEW_PROJECT,
        ):
            for resource in (TASK, PROJECT, Resource(ResourceType.TASK, department_id=OTHER_DEPT)):
                assert evaluate(actor, action, resource), (role, action, resource)

    def test_pgm_cannot_manage_departments(self):
        decision = evaluate(
            make_actor(UserRole.PROJECT_GROUP_MANAGER),
            Action.MANAGE_DEPARTMENT,
            Resource(ResourceType.DEPARTMENT, id=DEPT),
        )
        assert not decision
        assert "department" in decision.message

    def test_admin_manages_departments(self):
        assert evaluate(make_actor(UserRole.ADMIN), Action.MANAGE_DEPARTMENT, Resource(ResourceType.DEPARTMENT))


class TestDepartmentScope:
    """PM and TL are confined to their own department."""

    @pytest.mark.parametrize("role", [UserRole.PROJECT_MANAGER, UserRole.TEAM_LEADER])
    @pytest.mark.parametrize("department_id", [None, OTHER_DEPT])
    def test_mismatched_department_denies_manage_task(self, role, department_id):
        decision = evaluate(make_actor(role, department_id=department_id), Action.MANAGE_TASK, TASK)
        assert not decision
        assert "task task-1" in decision.message

    @pytest.mark.parametrize("role", [UserRole.PROJECT_MANAGER, UserRole.TEAM_LEADER])
    @pytest.mark.parametrize("department_id", [None, OTHER_DEPT])
    def test_mismatched_department_denies_manage_project(self, role, department_id):
        assert not evaluate(make_actor(role, department_id=department_id), Action.MANAGE_PROJECT, PROJECT)

    def test_missing_department_message(self):
        decision = evaluate(make_actor(UserRole.TEAM_LEADER, department_id=None), Action.MANAGE_TASK, TASK)
        assert "not assigned to a department" in decision.message

    def test_pm_manages_own_department_tasks_and_projects(self):
        actor = make_actor(UserRole.PROJECT_MANAGER)
        assert evaluate(actor, Action.MANAGE_TASK, TASK)
        assert evaluate(actor, Action.MANAGE_PROJECT, PROJECT)

    def test_team_leader_manages_tasks_but_not_projects(self):
        actor = make_actor(UserRole.TEAM_LEADER)
        assert evaluate(actor, Action.MANAGE_TASK, TASK)
        assert not evaluate(actor, Action.MANAGE_PROJECT, PROJECT)


class TestTeamMember:
    def test_team_member_can_update_task_state_in_own_department(self):
        """State changes follow a looser rule than task management."""
        assert evaluate(make_actor(UserRole.TEAM_MEMBER), Action.UPDATE_TASK_STATE, TASK)

    def test_team_member_cannot_manage_task_in_own_department(self):
        decision = evaluate(make_actor(UserRole.TEAM_MEMBER), Action.MANAGE_TASK, TASK)
        assert not decision
        assert "manage task task-1" in decision.message

    def test_team_member_cannot_update_state_elsewhere(self):
        assert not evaluate(
            make_actor(UserRole.TEAM_MEMBER, department_id=OTHER_DEPT),
            Action.UPDATE_TASK_STATE,
            TASK,
        )

    def test_team_member_views_own_department_tasks_and_history(self):
        actor = make_actor(UserRole.TEAM_MEMBER)
        assert evaluate(actor, Action.VIEW_TASK, TASK)
        assert evaluate(actor, Action.VIEW_TASK_HISTORY, TASK)

    def test_team_member_with_management_role_uses_it(self):
        actor = make_actor(UserRole.TEAM_MEMBER, UserRole.TEAM_LEADER)
        assert evaluate(actor, Action.MANAGE_TASK, TASK)

    def test_team_roles_cannot_view_projects_or_departments(self):
        for role in (UserRole.TEAM_LEADER, UserRole.TEAM_MEMBER):
            actor = make_actor(role)
            assert not evaluate(actor, Action.VIEW_PROJECT, PROJECT)
            assert not evaluate(actor, Action.VIEW_DEPARTMENT, Resource(ResourceType.DEPARTMENT, id=DEPT))


class TestUserRecords:
    def test_owner_can_view_and_manage_self(self):
        actor = make_actor(UserRole.TEAM_MEMBER)
        me = Resource(ResourceType.USER, id=actor.id, owner_id=actor.id)
        assert evaluate(actor, Action.VIEW_USER, me)
        assert evaluate(actor, Action.MANAGE_USER, me)

    def test_owner_cannot_administer_self(self):
        actor = make_actor(UserRole.PROJECT_MANAGER)
        me = Resource(ResourceType.USER, id=actor.id, owner_id=actor.id)
        assert not evaluate(actor, Action.ADMINISTER_USER, me)

    def test_others_cannot_view_user(self):
        someone = uuid4()
        resource = Resource(ResourceType.USER, id=someone, owner_id=someone)
        decision = evaluate(make_actor(UserRole.PROJECT_GROUP_MANAGER), Action.VIEW_USER, resource)
        assert not decision
        assert "ownership" in decision.message

    def test_admin_views_anyone(self):
        someone = uuid4()
        resource = Resource(ResourceType.USER, id=someone, owner_id=someone)
        assert evaluate(make_actor(UserRole.ADMIN), Action.VIEW_USER, resource)


class TestComments:
    def comment(self, author_id, department_id=DEPT):
        return Resource(ResourceType.COMMENT, id=1, department_id=department_id, owner_id=author_id)

    def test_author_manages_own_comment(self):
        author = make_actor(UserRole.TEAM_MEMBER)
        assert evaluate(author, Action.MANAGE_COMMENT, self.comment(author.id))

    def test_team_member_cannot_manage_others_comment(self):
        decision = evaluate(make_actor(UserRole.TEAM_MEMBER), Action.MANAGE_COMMENT, self.comment(uuid4()))
        assert not decision
        assert "comment 1" in decision.message

    @pytest.mark.parametrize("role", [UserRole.PROJECT_MANAGER, UserRole.TEAM_LEADER])
    def test_leads_moderate_only_their_department(self, role):
        assert evaluate(make_actor(role), Action.MANAGE_COMMENT, self.comment(uuid4()))
        assert not evaluate(make_actor(role), Action.MANAGE_COMMENT, self.comment(uuid4(), OTHER_DEPT))

    @pytest.mark.parametrize(
        "role, allowed",
        [
            (UserRole.ADMIN, True),
            (UserRole.PROJECT_GROUP_MANAGER, True),
            (UserRole.PROJECT_MANAGER, True),
            (UserRole.TEAM_LEADER, True),
            (UserRole.TEAM_MEMBER, False),
        ],
    )
    def test_listing_by_author(self, role, allowed):
        decision = evaluate(make_actor(role, department_id=None), Action.VIEW_USER_COMMENTS, Resource(ResourceType.COMMENT))
        assert bool(decision) is allowed


class TestRequireAndVisible:
    def test_require_raises_permission_denied(self):
        with pytest.raises(PermissionDeniedError) as exc_info:
            require(make_actor(UserRole.TEAM_MEMBER), Action.MANAGE_TASK, TASK)

        error = exc_info.value
        assert error.status_code == 403
        assert error.error == "permission_denied"
        assert error.details == {"action": "manage_task", "resource_type": "task", "resource_id": "task-1"}

    def test_require_passes_silently(self):
        assert require(make_actor(UserRole.ADMIN), Action.MANAGE_TASK, TASK) is None

    def test_visible_filters_by_department(self):
        items = [("a", DEPT), ("b", OTHER_DEPT), ("c", DEPT)]

        def to_resource(item):
            return Resource(ResourceType.TASK, id=item[0], department_id=item[1])

        kept = visible(make_actor(UserRole.TEAM_MEMBER), Action.VIEW_TASK, items, to_resource)
        assert [name for name, _ in kept] == ["a", "c"]

        everything = visible(make_actor(UserRole.ADMIN), Action.VIEW_TASK, items, to_resource)
        assert len(everything) == 3

    def test_every_action_has_a_rule(self):
        assert set(POLICY) == set(Action)
