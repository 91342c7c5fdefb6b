from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from academic_ops.core.enums import PromotionAction, PromotionOutcome
from academic_ops.core.schemas import UTCDateTime


class BulkPromotionRequest(BaseModel):
    """Move a set of students to one target session and placement. Section is optional."""

    target_session_id: UUID
    target_school_class_id: UUID
    target_class_arm_id: UUID
    target_class_section_id: Optional[UUID] = None
    retain_subjects: bool = Field(False, description="Keep subject assignments tied to the old class")
    student_ids: List[UUID] = Field(..., min_length=1)


class PromotionPreviewItem(BaseModel):
    student_id: UUID
    full_name: Optional[str] = None
    admission_no: Optional[str] = None
    action: PromotionAction
    from_placement: Optional[str] = None
    to_placement: Optional[str] = None
    reason: Optional[str] = None


class PromotionPreviewResponse(BaseModel):
    target_session_id: UUID
    target_session_name: str
    target_placement: str
    to_promote: int
    to_skip: int
    items: List[PromotionPreviewItem]


class PromotionStudentResult(BaseModel):
    student_id: UUID
    status: PromotionOutcome
    reason: Optional[str] = None
    record_id: Optional[int] = None


class BulkPromotionResponse(BaseModel):
    message: str
    promoted: int
    skipped: int
    results: List[PromotionStudentResult]


class PromotionHistoryFilters(BaseModel):
    """Query filters for the ledger. Class, arm and section match the destination placement."""

    session_id: Optional[UUID] = None
    term_id: Optional[UUID] = None
    school_class_id: Optional[UUID] = None
    class_arm_id: Optional[UUID] = None
    class_section_id: Optional[UUID] = None


class PromotionHistoryRow(BaseModel):
    id: int
    student_id: UUID
    student_name: str
    admission_no: Optional[str] = None
    from_session_id: Optional[UUID] = None
    from_placement_label: str
    to_session_id: UUID
    to_session_name: Optional[str] = None
    to_placement_label: str
    retain_subjects: bool
    performed_by: Optional[UUID] = None
    performed_by_name: Optional[str] = None
    promoted_at: UTCDateTime


class PromotionHistoryResponse(BaseModel):
    """Paginator envelope. `from`/`to` are 1-based positions of the first and last row on the page."""

    model_config = ConfigDict(populate_by_name=True)

    data: List[PromotionHistoryRow]
    current_page: int
    last_page: int
    per_page: int
    total: int
    from_: Optional[int] = Field(None, alias="from")
    to: Optional[int] = None
