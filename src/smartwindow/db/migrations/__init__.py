"""Packaged Alembic migrations for the smartwindow credential store."""
