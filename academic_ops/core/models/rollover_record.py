"""Append-only ledger of committed academic-year rollovers."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text, Uuid

from academic_ops.core.clock import utcnow
from academic_ops.db.session import Base


class RolloverRecord(Base):
    __tablename__ = "rollover_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    source_session_id = Column(Uuid, ForeignKey("academic_sessions.id"), nullable=False)
    new_session_id = Column(Uuid, ForeignKey("academic_sessions.id"), nullable=False, unique=True)
    terms_created = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)
    performed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    performed_at = Column(DateTime, default=utcnow, nullable=False)
