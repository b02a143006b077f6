"""
SQLAlchemy Base for Confidential Data.

This module provides the declarative base for all SQLAlchemy models.

Usage:
    from confidential_data.models.base import Base

    class MyModel(Base):
        __tablename__ = "my_table"
        ...
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base shared by all tables."""


__all__ = ["Base"]
