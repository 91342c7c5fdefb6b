from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from academic_ops.auth.dependencies import get_current_user
from academic_ops.auth.rbac import check_permission
from academic_ops.auth.schemas import CurrentUser
from academic_ops.db.session import get_db

from .schemas import SessionResponse, TermResponse
from . import service

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])


@router.get(
    "",
    response_model=List[SessionResponse],
    dependencies=[Depends(check_permission("sessions", "read"))],
)
async def list_sessions(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[SessionResponse]:
    """List sessions for the school, newest first."""
    return await service.list_sessions(db, current_user.school_id)


@router.get(
    "/current",
    response_model=Optional[SessionResponse],
    dependencies=[Depends(check_permission("sessions", "read"))],
)
async def get_current_session(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Optional[SessionResponse]:
    return await service.get_current_session(db, current_user.school_id)


@router.get(
    "/{session_id}",
    response_model=SessionResponse,
    dependencies=[Depends(check_permission("sessions", "read"))],
)
async def get_session(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SessionResponse:
    return await service.get_session_response(db, current_user.school_id, session_id)


@router.post(
    "/{session_id}/set-current",
    response_model=SessionResponse,
    dependencies=[Depends(check_permission("sessions", "update"))],
)
async def set_current_session(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SessionResponse:
    """Set this session as current. All others for the school become non-current."""
    return await service.set_current_session(db, current_user.school_id, session_id)


@router.get(
    "/{session_id}/terms",
    response_model=List[TermResponse],
    dependencies=[Depends(check_permission("sessions", "read"))],
)
async def list_session_terms(
    session_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[TermResponse]:
    """Terms of a session ordered by start date. Source for the rollover preview."""
    return await service.list_terms(db, current_user.school_id, session_id)
