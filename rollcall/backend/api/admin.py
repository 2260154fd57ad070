from fastapi import APIRouter, Depends, Query, Request, Response, status
from typing import List

from ..models.db_models import AuditEntry, OrganizationSettings
from ..services.access import AuthContext
from ..services.audit import AuditTrail
from ..services.device_binding import DeviceBindingStore
from ..services.organization_service import OrganizationService
from .schemas.admin import OrganizationSettingsUpdate
from .auth import get_current_user
from .dependencies import get_audit_trail, get_device_store, get_organization_service
from .utilities.limiter import limiter

router = APIRouter(prefix="/admin", tags=["Administration"])


@router.delete("/users/{user_id}/device", status_code=status.HTTP_204_NO_CONTENT, summary="Reset a user's device binding")
@limiter.limit("30/minute")
async def reset_device(request: Request, user_id: str, user: AuthContext = Depends(get_current_user), store: DeviceBindingStore = Depends(get_device_store)):
    await store.reset(user, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.get("/settings", response_model=OrganizationSettings, summary="Attendance rules of the caller's organization")
@limiter.limit("30/minute")
async def get_settings(request: Request, user: AuthContext = Depends(get_current_user), service: OrganizationService = Depends(get_organization_service)):
    return await service.get_settings(user)

@router.put("/settings", response_model=OrganizationSettings, summary="Change the attendance rules of the caller's organization")
@limiter.limit("10/minute")
async def update_settings(request: Request, changes: OrganizationSettingsUpdate, user: AuthContext = Depends(get_current_user), service: OrganizationService = Depends(get_organization_service)):
    return await service.update_settings(user, changes.late_attendance_limit, changes.strict_attendance)

@router.get("/audit-log", response_model=List[AuditEntry], summary="Privileged actions taken in the caller's organization, newest first")
@limiter.limit("30/minute")
async def get_audit_log(request: Request, limit: int = Query(100, ge=1, le=500), user: AuthContext = Depends(get_current_user), audit: AuditTrail = Depends(get_audit_trail)):
    return await audit.list_entries(user, limit)
