from fastapi import APIRouter, Depends, Query, Request, status
from typing import List

from ..services.access import AuthContext
from ..services.attendance_service import AttendanceService, ScanRequest
from .schemas.attendance import AttendanceRecordResponse
from .auth import get_current_user
from .dependencies import get_attendance_service
from .utilities.limiter import limiter

router = APIRouter(prefix="/attendance", tags=["Attendance"])


@router.post("/scan", response_model=AttendanceRecordResponse, status_code=status.HTTP_201_CREATED, summary="Check in to a live session")
@limiter.limit("30/minute")
async def scan(request: Request, scan_request: ScanRequest, user: AuthContext = Depends(get_current_user), service: AttendanceService = Depends(get_attendance_service)):
    return await service.verify_attendance(user, scan_request)

@router.get("/me", response_model=List[AttendanceRecordResponse], summary="The caller's latest attendance records")
@limiter.limit("60/minute")
async def my_records(request: Request, limit: int = Query(50, ge=1, le=500), user: AuthContext = Depends(get_current_user), service: AttendanceService = Depends(get_attendance_service)):
    return await service.get_my_records(user, limit)
