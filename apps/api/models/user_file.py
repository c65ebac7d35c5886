"""UserFile model for stored artifacts."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class UserFile(Base):
    """Metadata for an object held in artifact storage (PDF resumes, cover letters)."""

    __tablename__ = "user_files"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    generation_id = Column(String, ForeignKey("generations.id"), nullable=True)
    s3_key = Column(String, nullable=False, unique=True)
    file_name = Column(String, nullable=False)
    mime_type = Column(String, nullable=True)
    size_bytes = Column(Integer, nullable=True)
    category = Column(String, nullable=True)  # resume_pdf, cover_letter_pdf
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="files")
