"""
Ad - only the columns the payment subsystem reads (ownership, title) or writes
(promotion windows). The rest of the listing lives with the ads service.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String

from app.db.base import Base


class Ad(Base):
    __tablename__ = "ads"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False, default="")

    bumped_at = Column(DateTime(timezone=True), nullable=True)
    bump_expires_at = Column(DateTime(timezone=True), nullable=True)

    is_featured = Column(Boolean, nullable=False, default=False)
    featured_at = Column(DateTime(timezone=True), nullable=True)
    featured_until = Column(DateTime(timezone=True), nullable=True)

    is_urgent = Column(Boolean, nullable=False, default=False)
    urgent_at = Column(DateTime(timezone=True), nullable=True)
    urgent_until = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
