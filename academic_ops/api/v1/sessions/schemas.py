from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from academic_ops.core.schemas import UTCDateTime


class SessionResponse(BaseModel):
    id: UUID
    school_id: UUID
    name: str
    start_date: date
    end_date: date
    is_current: bool
    created_at: UTCDateTime
    updated_at: UTCDateTime

    class Config:
        from_attributes = True


class TermResponse(BaseModel):
    id: UUID
    session_id: UUID
    name: str
    start_date: date
    end_date: date

    class Config:
        from_attributes = True


class PlacementResponse(BaseModel):
    """Resolved (class, arm, section?) tuple with its display label."""

    school_class_id: UUID
    class_arm_id: UUID
    class_section_id: Optional[UUID] = None
    label: str
