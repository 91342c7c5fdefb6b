from typing import Any, Dict, List, Optional

from fastapi import status
from pydantic import BaseModel


class ValidationIssue(BaseModel):
    """One client-fixable problem. `row` is the 1-based file row (header = row 1) for imports."""

    message: str
    row: Optional[int] = None
    column: Optional[str] = None
    field: Optional[str] = None


class ServiceError(Exception):
    """Base exception for service layer errors."""

    code = "service_error"

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_body(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code}


class StructuralError(ServiceError):
    """Malformed request or file; rejected before any store access."""

    code = "structural_error"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class ValidationFailed(ServiceError):
    """Field- or row-scoped validation failure. Every issue is returned to the caller."""

    code = "validation_error"

    def __init__(self, message: str, errors: Optional[List[ValidationIssue]] = None) -> None:
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.errors = list(errors or [])

    def to_body(self) -> Dict[str, Any]:
        body = super().to_body()
        body["errors"] = [e.model_dump(exclude_none=True) for e in self.errors]
        return body


class NotFoundError(ServiceError):
    code = "not_found"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ConflictError(ServiceError):
    """State already transitioned (duplicate commit, name clash). Not retried automatically."""

    code = "conflict"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)
        if code:
            self.code = code


class BatchExpiredError(ConflictError):
    code = "batch_expired"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class TransientError(ServiceError):
    """Storage failure during a commit. Safe to retry: commit paths are idempotent."""

    code = "transient_error"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)
