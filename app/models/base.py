"""
SQLAlchemy declarative base.

All models inherit from Base so Alembic and the repositories share one
metadata object.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for all models."""
