from fastapi import APIRouter, Depends, Request
from typing import List

from ..modules.attendance_aggregator import AnalyticsData, SessionLog
from ..services.access import AuthContext
from ..services.report_service import ReportService
from .schemas.report import ReportRequest
from .auth import get_current_user
from .dependencies import get_report_service
from .utilities.limiter import limiter

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.post("/analytics", response_model=AnalyticsData, summary="Attendance timeline, summary and rankings")
@limiter.limit("20/minute")
async def analytics(request: Request, report: ReportRequest, user: AuthContext = Depends(get_current_user), service: ReportService = Depends(get_report_service)):
    return await service.get_analytics(user, report.session_ids, report.start_date, report.end_date, report.batch_ids)

@router.post("/session-logs", response_model=List[SessionLog], summary="One row per occurrence in the range")
@limiter.limit("20/minute")
async def session_logs(request: Request, report: ReportRequest, user: AuthContext = Depends(get_current_user), service: ReportService = Depends(get_report_service)):
    return await service.get_session_logs(user, report.session_ids, report.start_date, report.end_date, report.batch_ids)
