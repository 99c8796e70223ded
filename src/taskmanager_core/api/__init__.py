"""HTTP layer for Task Manager Core."""
