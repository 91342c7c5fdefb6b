import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid

from academic_ops.core.clock import utcnow
from academic_ops.core.enums import StudentStatus
from academic_ops.db.session import Base


class Student(Base):
    """
    Student with exactly one current placement (class, arm, optional section) and
    one current session/term. Placement is changed only by promotion, import, or a direct edit.
    `version` is managed by the mapper (version_id_col): every UPDATE checks and bumps it,
    so two concurrent writers cannot both apply a change to the same row.
    """

    __tablename__ = "students"
    __table_args__ = (UniqueConstraint("school_id", "admission_no", name="uq_student_school_admission_no"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    admission_no = Column(String(50), nullable=False)
    first_name = Column(String(100), nullable=False)
    middle_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=False)
    gender = Column(String(10), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    parent_id = Column(Uuid, ForeignKey("parents.id", ondelete="SET NULL"), nullable=True)

    school_class_id = Column(Uuid, ForeignKey("school_classes.id"), nullable=False)
    class_arm_id = Column(Uuid, ForeignKey("class_arms.id"), nullable=False)
    class_section_id = Column(Uuid, ForeignKey("class_sections.id"), nullable=True)
    current_session_id = Column(Uuid, ForeignKey("academic_sessions.id"), nullable=False)
    current_term_id = Column(Uuid, ForeignKey("terms.id"), nullable=True)

    status = Column(String(20), nullable=False, default=StudentStatus.ACTIVE.value)
    version = Column(Integer, nullable=False)
    # Set when the student was created by a committed import batch.
    import_batch_id = Column(Uuid, ForeignKey("import_batches.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name]
        return " ".join(p for p in parts if p)


class StudentSubjectAssignment(Base):
    """Per-student subject override bound to a class. Cleared on promotion unless subjects are retained."""

    __tablename__ = "student_subject_assignments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    school_class_id = Column(Uuid, ForeignKey("school_classes.id"), nullable=False)
    subject_name = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
