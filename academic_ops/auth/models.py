import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid

from academic_ops.core.clock import utcnow
from academic_ops.db.session import Base


class User(Base):
    """Operator account within a school, with role-based access to modules."""

    __tablename__ = "users"
    __table_args__ = (
        # Email must be unique per school
        UniqueConstraint("school_id", "email", name="uq_user_school_email"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id"), nullable=False)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    # SUPER_ADMIN, ADMIN, REGISTRAR, TEACHER, ...
    role = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default="ACTIVE")
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Role(Base):
    """School-scoped role with JSON permissions."""

    __tablename__ = "roles"
    __table_args__ = (
        # Role name must be unique within a school
        UniqueConstraint("school_id", "name", name="uq_role_school_name"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id"), nullable=False)
    name = Column(String(100), nullable=False)
    # Example shape:
    # {
    #   "promotions": {"create": true, "read": true},
    #   "students": {"read": true}
    # }
    permissions = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow, nullable=False)
