from datetime import date
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from academic_ops.api.v1.sessions.schemas import SessionResponse, TermResponse
from academic_ops.core.enums import RolloverPreviewStatus
from academic_ops.core.schemas import UTCDateTime


class RolloverPreviewRequest(BaseModel):
    """Dates are optional: without both, the preview is structural only (placeholder dates)."""

    source_session_id: UUID
    new_session_name: Optional[str] = Field(None, max_length=50, description="e.g. 2024/2025")
    new_session_start: Optional[date] = None
    new_session_end: Optional[date] = None


class RolloverCommitRequest(BaseModel):
    """All fields are checked by the service so every invalid field is reported at once."""

    source_session_id: Optional[UUID] = None
    new_session_name: Optional[str] = Field(None, max_length=50)
    new_session_start: Optional[date] = None
    new_session_end: Optional[date] = None
    notes: Optional[str] = None
    set_as_current: bool = Field(False, description="Mark the new session current; all others become non-current.")


class ProposedSession(BaseModel):
    name: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class ProposedTerm(BaseModel):
    """A cloned term. proposed_* are null in a structural preview."""

    name: str
    source_term_id: Optional[UUID] = None
    source_start: Optional[date] = None
    source_end: Optional[date] = None
    proposed_start: Optional[date] = None
    proposed_end: Optional[date] = None


class RolloverPreviewResponse(BaseModel):
    source_session_id: UUID
    source_session_name: str
    new_session: ProposedSession
    proposed_terms: List[ProposedTerm] = Field(default_factory=list)
    duration_days: Optional[int] = Field(None, description="Width of every proposed term window, in days")
    status: RolloverPreviewStatus
    message: str
    warnings: List[str] = Field(default_factory=list)


class RolloverCommitResponse(BaseModel):
    message: str
    rollover_id: int
    session: SessionResponse
    terms: List[TermResponse]


class RolloverRecordResponse(BaseModel):
    id: int
    source_session_id: UUID
    new_session_id: UUID
    terms_created: int
    notes: Optional[str] = None
    performed_by: Optional[UUID] = None
    performed_at: UTCDateTime

    class Config:
        from_attributes = True
