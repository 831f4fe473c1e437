"""Persistence layer for dueline (SQLAlchemy)."""
