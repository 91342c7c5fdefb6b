"""
Append-only promotion ledger. One row per student per committed promotion; never updated.
Integer id doubles as insertion sequence for stable pagination.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Uuid

from academic_ops.core.clock import utcnow
from academic_ops.db.session import Base


class PromotionRecord(Base):
    __tablename__ = "promotion_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    student_name = Column(String(255), nullable=False)
    admission_no = Column(String(50), nullable=True)

    from_session_id = Column(Uuid, ForeignKey("academic_sessions.id"), nullable=True)
    from_school_class_id = Column(Uuid, nullable=True)
    from_class_arm_id = Column(Uuid, nullable=True)
    from_class_section_id = Column(Uuid, nullable=True)
    from_placement_label = Column(String(255), nullable=False)

    to_session_id = Column(Uuid, ForeignKey("academic_sessions.id"), nullable=False, index=True)
    to_school_class_id = Column(Uuid, nullable=False)
    to_class_arm_id = Column(Uuid, nullable=False)
    to_class_section_id = Column(Uuid, nullable=True)
    to_placement_label = Column(String(255), nullable=False)

    retain_subjects = Column(Boolean, nullable=False, default=False)
    performed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    performed_by_name = Column(String(255), nullable=True)
    promoted_at = Column(DateTime, default=utcnow, nullable=False, index=True)
