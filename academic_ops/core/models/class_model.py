"""School classes (e.g. JSS 1), their arms (A, B) and optional arm sections (Gold, Blue).
Model named SchoolClass to avoid Python 'class' keyword."""
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid

from academic_ops.core.clock import utcnow
from academic_ops.db.session import Base


class SchoolClass(Base):
    __tablename__ = "school_classes"
    __table_args__ = (UniqueConstraint("school_id", "name", name="uq_class_school_name"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    display_order = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ClassArm(Base):
    """Arm of a class. Name is unique per class."""

    __tablename__ = "class_arms"
    __table_args__ = (UniqueConstraint("school_class_id", "name", name="uq_arm_class_name"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    school_class_id = Column(Uuid, ForeignKey("school_classes.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(50), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ClassSection(Base):
    """Optional subdivision of an arm. Not every arm has sections."""

    __tablename__ = "class_sections"
    __table_args__ = (UniqueConstraint("class_arm_id", "name", name="uq_section_arm_name"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    class_arm_id = Column(Uuid, ForeignKey("class_arms.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(50), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
