"""
Common mixins for billing models
"""
from sqlalchemy import Column, DateTime, Boolean, Uuid
from sqlalchemy.sql import func
from uuid import uuid4


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class BaseMixin(TimestampMixin):
    """Primary key, timestamps and active flag for reference data"""

    id = Column(Uuid, primary_key=True, default=uuid4, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
