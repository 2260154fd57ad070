from fastapi import APIRouter, Depends, Query, Request, status
from typing import List, Optional
from uuid import UUID

from ..models.db_models import LeaveRequest, LeaveStatus, LeaveType
from ..services.access import AuthContext
from ..services.leave_service import LeaveService, LeaveWithUser
from .schemas.leave import LeaveApplyRequest, LeaveReviewRequest
from .auth import get_current_user
from .dependencies import get_leave_service
from .utilities.limiter import limiter

router = APIRouter(prefix="/leaves", tags=["Leaves"])


@router.post("", response_model=LeaveRequest, status_code=status.HTTP_201_CREATED, summary="Apply for leave")
@limiter.limit("10/minute")
async def apply_leave(request: Request, application: LeaveApplyRequest, user: AuthContext = Depends(get_current_user), service: LeaveService = Depends(get_leave_service)):
    return await service.apply_leave(
        user, application.leave_type, application.start_date, application.end_date,
        application.reason, application.dates
    )

@router.get("/me", response_model=List[LeaveRequest], summary="The caller's leave requests")
@limiter.limit("30/minute")
async def my_leaves(request: Request, user: AuthContext = Depends(get_current_user), service: LeaveService = Depends(get_leave_service)):
    return await service.list_my_leaves(user)

@router.get("", response_model=List[LeaveWithUser], summary="Leave requests of the organization")
@limiter.limit("30/minute")
async def organization_leaves(
    request: Request,
    status_filter: Optional[LeaveStatus] = Query(None, alias="status"),
    leave_type: Optional[LeaveType] = None,
    user_id: Optional[str] = None,
    user: AuthContext = Depends(get_current_user),
    service: LeaveService = Depends(get_leave_service)
):
    return await service.list_organization_leaves(user, status=status_filter, leave_type=leave_type, user_id=user_id)

@router.post("/{leave_id}/review", response_model=LeaveRequest, summary="Approve or reject a pending leave")
@limiter.limit("60/minute")
async def review_leave(request: Request, leave_id: UUID, review: LeaveReviewRequest, user: AuthContext = Depends(get_current_user), service: LeaveService = Depends(get_leave_service)):
    return await service.review_leave(user, leave_id, review.status, review.rejection_reason)
