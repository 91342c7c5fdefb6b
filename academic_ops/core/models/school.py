import uuid

from sqlalchemy import Column, DateTime, String, Uuid

from academic_ops.core.clock import utcnow
from academic_ops.db.session import Base


class School(Base):
    """Owning organisation. Every academic entity is scoped to one school."""

    __tablename__ = "schools"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    code = Column(String(20), nullable=False, unique=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
