"""Canonical response envelope and field types shared by every route."""

from datetime import datetime, timezone
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, Field

from academic_ops.core.exceptions import ValidationIssue


def as_utc(value: datetime) -> datetime:
    """Stored timestamps are naive UTC; responses carry the offset so clients never read them as local time."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UTCDateTime = Annotated[datetime, AfterValidator(as_utc)]


class ErrorResponse(BaseModel):
    message: str
    code: str = Field(..., description="Stable machine-readable error code")
    errors: Optional[List[ValidationIssue]] = None
