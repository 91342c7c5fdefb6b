"""
Staged student import. A batch is created by preview and moves exactly once from
staged to committed, expired or discarded. Terminal states are never left.
"""

import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from academic_ops.core.clock import utcnow
from academic_ops.core.enums import ImportBatchStatus
from academic_ops.db.session import Base


class ImportBatch(Base):
    __tablename__ = "import_batches"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    filename = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=ImportBatchStatus.staged.value, index=True)
    total_rows = Column(Integer, nullable=False, default=0)
    valid_rows = Column(Integer, nullable=False, default=0)
    invalid_rows = Column(Integer, nullable=False, default=0)
    summary = Column(JSON, nullable=False, default=dict)
    # Result of the commit: {"total_processed", "created", "skipped"}
    commit_summary = Column(JSON, nullable=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    committed_at = Column(DateTime, nullable=True)
    discarded_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    rows = relationship(
        "ImportBatchRow",
        back_populates="batch",
        order_by="ImportBatchRow.row_number",
        cascade="all, delete-orphan",
    )


class ImportBatchRow(Base):
    """One uploaded row: normalized values, resolved references and its validation errors."""

    __tablename__ = "import_batch_rows"
    __table_args__ = (UniqueConstraint("batch_id", "row_number", name="uq_batch_row_number"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    batch_id = Column(Uuid, ForeignKey("import_batches.id", ondelete="CASCADE"), nullable=False, index=True)
    row_number = Column(Integer, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    errors = Column(JSON, nullable=False, default=list)
    student_id = Column(Uuid, nullable=True)

    batch = relationship("ImportBatch", back_populates="rows")
