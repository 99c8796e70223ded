"""Initial schema: departments, users, roles, projects, tasks and task state history.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

USER_ROLES = ('ADMIN', 'PROJECT_GROUP_MANAGER', 'PROJECT_MANAGER', 'TEAM_LEADER', 'TEAM_MEMBER')
TASK_STATES = ('BACKLOG', 'IN_ANALYSIS', 'IN_PROGRESS', 'BLOCKED', 'COMPLETED', 'CANCELLED')
TASK_PRIORITIES = ('CRITICAL', 'HIGH', 'MEDIUM', 'LOW')
PROJECT_STATUSES = (
    'IN_PROGRESS', 'CANCELLED', 'COMPLETED', 'PENDING', 'ON_HOLD',
    'PLANNING', 'REVIEW', 'TESTING', 'ARCHIVED', 'FAILED',
)


def upgrade() -> None:
    # Departments (tenancy boundary)
    op.create_table(
        'departments',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.String(500)),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_departments_name', 'departments', ['name'], unique=True)
    op.create_index('ix_departments_is_active', 'departments', ['is_active'])

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('first_name', sa.String(50), nullable=False),
        sa.Column('last_name', sa.String(50), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('department_id', sa.Integer, sa.ForeignKey('departments.id', ondelete='SET NULL')),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_department_id', 'users', ['department_id'])
    op.create_index('ix_users_is_active', 'users', ['is_active'])

    op.create_table(
        'user_roles',
        sa.Column('user_id', sa.Uuid, sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('role', sa.Enum(*USER_ROLES, name='userrole'), primary_key=True),
        sa.Column('granted_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'projects',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('description', sa.String(1000)),
        sa.Column('status', sa.Enum(*PROJECT_STATUSES, name='projectstatus'), nullable=False, server_default='PENDING'),
        sa.Column('department_id', sa.Integer, sa.ForeignKey('departments.id'), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('created_by_user_id', sa.Uuid, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('updated_by_user_id', sa.Uuid, sa.ForeignKey('users.id', ondelete='SET NULL')),
    )
    op.create_index('ix_projects_status', 'projects', ['status'])
    op.create_index('ix_projects_department_id', 'projects', ['department_id'])
    op.create_index('ix_projects_is_active', 'projects', ['is_active'])
    op.create_index('ix_projects_created_at', 'projects', ['created_at'])
    op.create_index('ix_projects_created_by_user_id', 'projects', ['created_by_user_id'])
    op.create_index('ix_projects_updated_by_user_id', 'projects', ['updated_by_user_id'])

    # Project team members (many-to-many)
    op.create_table(
        'project_members',
        sa.Column('project_id', sa.Uuid, sa.ForeignKey('projects.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('user_id', sa.Uuid, sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('joined_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'tasks',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('project_id', sa.Uuid, sa.ForeignKey('projects.id'), nullable=False),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('user_story', sa.Text, nullable=False),
        sa.Column('acceptance_criteria', sa.Text, nullable=False),
        sa.Column('state', sa.Enum(*TASK_STATES, name='taskstate'), nullable=False, server_default='BACKLOG'),
        sa.Column('priority', sa.Enum(*TASK_PRIORITIES, name='taskpriority'), nullable=False, server_default='MEDIUM'),
        sa.Column('state_change_reason', sa.String(500)),
        sa.Column('assigned_user_id', sa.Uuid, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        # Optimistic concurrency counter, bumped on every UPDATE
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_by', sa.Uuid, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_tasks_project_id', 'tasks', ['project_id'])
    op.create_index('ix_tasks_state', 'tasks', ['state'])
    op.create_index('ix_tasks_priority', 'tasks', ['priority'])
    op.create_index('ix_tasks_assigned_user_id', 'tasks', ['assigned_user_id'])
    op.create_index('ix_tasks_is_active', 'tasks', ['is_active'])
    op.create_index('ix_tasks_created_at', 'tasks', ['created_at'])

    # Append-only audit trail; old_state is NULL only for the creation entry
    op.create_table(
        'task_state_histories',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('task_id', sa.Uuid, sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('old_state', sa.Enum(*TASK_STATES, name='taskstate', create_type=False)),
        sa.Column('new_state', sa.Enum(*TASK_STATES, name='taskstate', create_type=False), nullable=False),
        sa.Column('reason', sa.String(500)),
        sa.Column('changed_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('changed_by', sa.Uuid, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.CheckConstraint(
            "new_state NOT IN ('BLOCKED', 'CANCELLED') OR (reason IS NOT NULL AND length(trim(reason)) > 0)",
            name='reason_required_for_blocked_cancelled'
        ),
    )
    op.create_index('ix_task_state_histories_task_id', 'task_state_histories', ['task_id'])
    op.create_index('ix_task_state_histories_old_state', 'task_state_histories', ['old_state'])
    op.create_index('ix_task_state_histories_new_state', 'task_state_histories', ['new_state'])
    op.create_index('ix_task_state_histories_changed_at', 'task_state_histories', ['changed_at'])
    op.create_index('ix_task_state_histories_changed_by', 'task_state_histories', ['changed_by'])


def downgrade() -> None:
    # Drop tables
    op.drop_table('task_state_histories')
    op.drop_table('tasks')
    op.drop_table('project_members')
    op.drop_table('projects')
    op.drop_table('user_roles')
    op.drop_table('users')
    op.drop_table('departments')

    # Drop enums
    op.execute('DROP TYPE IF EXISTS taskstate')
    op.execute('DROP TYPE IF EXISTS taskpriority')
    op.execute('DROP TYPE IF EXISTS projectstatus')
    op.execute('DROP TYPE IF EXISTS userrole')
