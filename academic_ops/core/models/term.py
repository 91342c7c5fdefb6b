import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from academic_ops.core.clock import utcnow
from academic_ops.db.session import Base


class Term(Base):
    """Sub-period of a session ("1st", "2nd", "3rd"). start_date < end_date."""

    __tablename__ = "terms"
    __table_args__ = (UniqueConstraint("session_id", "name", name="uq_term_session_name"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(Uuid, ForeignKey("academic_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(20), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    session = relationship("AcademicSession", back_populates="terms")
