"""Generation model: one row per completed AI call."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class Generation(Base):
    """Persisted outcome of a successful provider call."""

    __tablename__ = "generations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False)  # RESUME, COVER_LETTER, JOB_ANALYSIS, RESUME_ANALYSIS
    prompt = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    model = Column(String, nullable=False)
    provider = Column(String, nullable=True)
    processing_ms = Column(Integer, nullable=False, default=0)
    s3_key = Column(String, nullable=True)
    credits_used = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    user = relationship("User", back_populates="generations")
