"""Task Manager Core: department-scoped task management with a task state machine."""

__version__ = "1.0.0"
