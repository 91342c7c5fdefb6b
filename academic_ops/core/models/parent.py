import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid

from academic_ops.core.clock import utcnow
from academic_ops.db.session import Base


class Parent(Base):
    """Parent/guardian. Imports link students to parents by email."""

    __tablename__ = "parents"
    __table_args__ = (UniqueConstraint("school_id", "email", name="uq_parent_school_email"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
