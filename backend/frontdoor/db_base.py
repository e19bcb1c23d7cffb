"""
SQLAlchemy declarative base for all models.

This module contains only the Base declarative base and must not import
from models or services to avoid circular dependencies.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
