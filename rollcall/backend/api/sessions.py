from fastapi import APIRouter, Depends, Request, status
from typing import List
from uuid import UUID

from ..models.db_models import SessionTemplate
from ..services.access import AuthContext
from ..services.attendance_service import AttendanceService, SelectableSession
from ..services.session_service import SessionService, SessionTemplateInput, SessionTemplateUpdate
from .schemas.attendance import AttendanceRecordResponse, ForceMarkRequest
from .auth import get_current_user
from .dependencies import get_attendance_service, get_session_service
from .utilities.limiter import limiter

router = APIRouter(prefix="/sessions", tags=["Sessions"])


@router.get("/selectable", response_model=List[SelectableSession], summary="Sessions the caller can check in to now or soon")
@limiter.limit("60/minute")
async def list_selectable_sessions(request: Request, user: AuthContext = Depends(get_current_user), service: AttendanceService = Depends(get_attendance_service)):
    return await service.list_selectable_sessions(user)

@router.get("", response_model=List[SessionTemplate], summary="List sessions")
@limiter.limit("30/minute")
async def list_sessions(request: Request, include_cancelled: bool = False, user: AuthContext = Depends(get_current_user), service: SessionService = Depends(get_session_service)):
    return await service.list_templates(user, include_cancelled=include_cancelled)

@router.post("", response_model=SessionTemplate, status_code=status.HTTP_201_CREATED, summary="Create a session")
@limiter.limit("10/minute")
async def create_session(request: Request, draft: SessionTemplateInput, user: AuthContext = Depends(get_current_user), service: SessionService = Depends(get_session_service)):
    return await service.create_template(user, draft)

@router.get("/{session_id}", response_model=SessionTemplate, summary="Get a session")
@limiter.limit("60/minute")
async def get_session(request: Request, session_id: UUID, user: AuthContext = Depends(get_current_user), service: SessionService = Depends(get_session_service)):
    return await service.get_template(user, session_id)

@router.patch("/{session_id}", response_model=SessionTemplate, summary="Update a session")
@limiter.limit("10/minute")
async def update_session(request: Request, session_id: UUID, changes: SessionTemplateUpdate, user: AuthContext = Depends(get_current_user), service: SessionService = Depends(get_session_service)):
    return await service.update_template(user, session_id, changes)

@router.post("/{session_id}/cancel", response_model=SessionTemplate, summary="Cancel every future occurrence of a session")
@limiter.limit("10/minute")
async def cancel_session(request: Request, session_id: UUID, user: AuthContext = Depends(get_current_user), service: SessionService = Depends(get_session_service)):
    return await service.cancel_template(user, session_id)

@router.post("/{session_id}/force-mark", response_model=AttendanceRecordResponse, status_code=status.HTTP_201_CREATED, summary="Mark a user present or absent without a scan")
@limiter.limit("200/minute")
async def force_mark(request: Request, session_id: UUID, mark: ForceMarkRequest, user: AuthContext = Depends(get_current_user), service: AttendanceService = Depends(get_attendance_service)):
    return await service.force_mark(user, session_id, mark.user_id, mark.status, mark.occurrence_date)
