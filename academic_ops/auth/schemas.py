from typing import Dict
from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated operator for RBAC checks and audit trails."""

    id: UUID
    school_id: UUID
    full_name: str
    role: str
    permissions: Dict[str, Dict[str, bool]]
