import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from academic_ops.core.clock import utcnow
from academic_ops.db.session import Base


class AcademicSession(Base):
    """
    Academic year container (e.g. "2024/2025"). Only one per school can be is_current = true.
    Named AcademicSession to avoid confusion with the SQLAlchemy Session.
    """

    __tablename__ = "academic_sessions"
    __table_args__ = (UniqueConstraint("school_id", "name", name="uq_session_school_name"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_current = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    terms = relationship(
        "Term",
        back_populates="session",
        order_by="Term.start_date",
        cascade="all, delete-orphan",
    )
