"""API routers for Task Manager Core."""

from . import comments, departments, projects, task_state_histories, tasks, users

__all__ = ["comments", "departments", "projects", "task_state_histories", "tasks", "users"]
