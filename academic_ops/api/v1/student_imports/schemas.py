from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from academic_ops.core.enums import ImportBatchStatus
from academic_ops.core.exceptions import ValidationIssue
from academic_ops.core.schemas import UTCDateTime


class ImportPreviewRow(BaseModel):
    row: int
    name: str
    admission_no: str
    session: str
    school_class: str
    class_arm: str
    class_section: Optional[str] = None
    parent_email: Optional[str] = None
    valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)


class ImportSummary(BaseModel):
    """Counts over valid rows, except total_rows and invalid_rows."""

    total_rows: int
    valid_rows: int
    invalid_rows: int
    sessions: int
    classes: int
    by_session: Dict[str, int] = Field(default_factory=dict)
    by_class: Dict[str, int] = Field(default_factory=dict)


class ImportPreviewResponse(BaseModel):
    batch_id: UUID
    status: ImportBatchStatus
    preview_rows: List[ImportPreviewRow]
    summary: ImportSummary
    expires_at: UTCDateTime
    errors: List[ValidationIssue] = Field(default_factory=list)
    error_csv: Optional[str] = Field(None, description="Base64-encoded CSV of row,column,message")


class ImportCommitSummary(BaseModel):
    total_processed: int
    created: int
    skipped: int


class ImportCommitResponse(BaseModel):
    message: str
    batch_id: UUID
    status: ImportBatchStatus
    summary: ImportCommitSummary
    created_student_ids: List[UUID]
    skipped_rows: List[ImportPreviewRow] = Field(default_factory=list)


class ImportBatchResponse(BaseModel):
    batch_id: UUID
    filename: str
    status: ImportBatchStatus
    summary: ImportSummary
    created_at: UTCDateTime
    expires_at: UTCDateTime
    committed_at: Optional[UTCDateTime] = None
    commit_summary: Optional[ImportCommitSummary] = None
    rows: List[ImportPreviewRow]


class ImportBatchStatusResponse(BaseModel):
    message: str
    batch_id: UUID
    status: ImportBatchStatus
