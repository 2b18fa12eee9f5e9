# leavebilling/db/base.py
from sqlalchemy import Column, DateTime
from sqlalchemy.orm import declarative_base

from leavebilling.core.timeutils import utcnow

Base = declarative_base()


class BaseModel(Base):
    """Abstract base model with common fields"""
    __abstract__ = True

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
