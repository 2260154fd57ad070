import logging
from datetime import date, time
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, ValidationError

from ..db.db_client import AsyncPostgresClient
from ..models.db_models import AuditAction, Frequency, Geofence, LocationType, SessionTemplate, Weekday
from ..modules.clock import Clock
from .access import AuthContext
from .audit import AuditTrail
from .errors import InputValidationError, NotAuthorizedError, NotFoundError, ServiceError
from .organization_service import OrganizationService

logger = logging.getLogger(__name__)


class SessionTemplateInput(BaseModel):
    """Fields a manager supplies when creating a session."""
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None
    start_time: time
    end_time: time
    weekly_days: List[Weekday] = Field(default_factory=list)
    location_type: LocationType
    physical_location: Optional[Geofence] = None
    virtual_location: Optional[str] = None
    assigned_users: List[str] = Field(default_factory=list)
    late_grace_minutes: Optional[int] = Field(None, ge=0, description="Defaults to the organization's late limit.")
    session_admin: Optional[str] = None
    batch_id: Optional[UUID] = None


class SessionTemplateUpdate(BaseModel):
    """Partial update; only the fields that are set are changed."""
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    frequency: Optional[Frequency] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    weekly_days: Optional[List[Weekday]] = None
    location_type: Optional[LocationType] = None
    physical_location: Optional[Geofence] = None
    virtual_location: Optional[str] = None
    assigned_users: Optional[List[str]] = None
    late_grace_minutes: Optional[int] = Field(None, ge=0)
    session_admin: Optional[str] = None
    batch_id: Optional[UUID] = None


def _first_error(e: ValidationError) -> str:
    error = e.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error['msg']}" if location else error["msg"]


class SessionService:
    """
    Creation and maintenance of session templates.
    """
    def __init__(self, db_client: AsyncPostgresClient, organization_service: OrganizationService, clock: Clock,
                 audit: Optional[AuditTrail] = None):
        self.db_client = db_client
        self.organization_service = organization_service
        self.clock = clock
        self.audit = audit

    async def _check_users(self, auth: AuthContext, user_ids: List[str]):
        wanted = set(user_ids)
        try:
            users = await self.db_client.get_users(list(wanted))
        except Exception as e:
            logger.error("Database error while checking assigned users.", exc_info=True)
            raise ServiceError("A server error occurred while checking assigned users.") from e
        known = {user.user_id for user in users if user.organization_id == auth.organization_id}
        unknown = sorted(wanted - known)
        if unknown:
            raise InputValidationError(f"Unknown users for this organization: {', '.join(unknown)}")

    async def _check_batch(self, auth: AuthContext, batch_id: UUID):
        try:
            batch = await self.db_client.get_class_batch(batch_id)
        except Exception as e:
            logger.error(f"Database error while checking batch {batch_id}.", exc_info=True)
            raise ServiceError("A server error occurred while checking the batch.") from e
        if batch is None or batch.organization_id != auth.organization_id:
            raise InputValidationError(f"Unknown batch for this organization: {batch_id}")

    async def _get_own_template(self, auth: AuthContext, session_id: UUID) -> SessionTemplate:
        try:
            template = await self.db_client.get_session_template(session_id)
        except Exception as e:
            logger.error(f"Database error while fetching session {session_id}.", exc_info=True)
            raise ServiceError("A server error occurred while fetching the session.") from e
        if template is None:
            raise NotFoundError("Session not found.")
        if template.organization_id != auth.organization_id:
            raise NotAuthorizedError("You are not allowed to access this session.")
        return template

    async def create_template(self, auth: AuthContext, draft: SessionTemplateInput) -> SessionTemplate:
        auth.require("can_edit_session", "create sessions")
        await self._check_users(auth, draft.assigned_users + ([draft.session_admin] if draft.session_admin else []))
        if draft.batch_id is not None:
            await self._check_batch(auth, draft.batch_id)

        data = draft.model_dump()
        if data["late_grace_minutes"] is None:
            org_settings = await self.organization_service.settings_for(auth.organization_id)
            data["late_grace_minutes"] = org_settings.late_attendance_limit
        try:
            template = SessionTemplate(
                **data, session_id=uuid4(), organization_id=auth.organization_id, created_by=auth.user_id
            )
        except ValidationError as e:
            raise InputValidationError(_first_error(e)) from e

        try:
            await self.db_client.add_session_template(template)
        except Exception as e:
            logger.error(f"Error saving session '{template.name}'.", exc_info=True)
            raise ServiceError("A server error occurred while creating the session.") from e
        logger.info(f"Session {template.session_id} ('{template.name}', {template.frequency.value}) created by '{auth.user_id}'.")
        return template

    async def update_template(self, auth: AuthContext, session_id: UUID, changes: SessionTemplateUpdate) -> SessionTemplate:
        auth.require("can_edit_session", "edit sessions")
        template = await self._get_own_template(auth, session_id)
        updates = changes.model_dump(exclude_unset=True)
        if updates.get("assigned_users"):
            await self._check_users(auth, updates["assigned_users"])
        if updates.get("batch_id") is not None:
            await self._check_batch(auth, updates["batch_id"])

        try:
            updated = SessionTemplate.model_validate({**template.model_dump(), **updates})
        except ValidationError as e:
            raise InputValidationError(_first_error(e)) from e

        try:
            await self.db_client.update_session_template(updated)
        except Exception as e:
            logger.error(f"Error updating session {session_id}.", exc_info=True)
            raise ServiceError("A server error occurred while updating the session.") from e
        logger.info(f"Session {session_id} updated by '{auth.user_id}': {sorted(updates)}")
        return updated

    async def cancel_template(self, auth: AuthContext, session_id: UUID) -> SessionTemplate:
        """
        Cancels the session from today on. Earlier occurrences and their
        records stay in reports.
        """
        auth.require("can_edit_session", "cancel sessions")
        template = await self._get_own_template(auth, session_id)
        if template.is_cancelled:
            return template
        template.is_cancelled = True
        template.cancelled_on = self.clock.today()
        try:
            await self.db_client.update_session_template(template)
        except Exception as e:
            logger.error(f"Error cancelling session {session_id}.", exc_info=True)
            raise ServiceError("A server error occurred while cancelling the session.") from e
        logger.info(f"Session {session_id} cancelled by '{auth.user_id}'.")
        if self.audit is not None:
            await self.audit.record(auth, AuditAction.CANCEL_SESSION, details={"session_id": str(session_id), "cancelled_on": str(template.cancelled_on)})
        return template

    async def get_template(self, auth: AuthContext, session_id: UUID) -> SessionTemplate:
        template = await self._get_own_template(auth, session_id)
        involved = auth.user_id in template.assigned_users or auth.user_id == template.session_admin
        if not (auth.capabilities.can_edit_session or auth.capabilities.can_view_reports or involved):
            raise NotAuthorizedError("You are not allowed to access this session.")
        return template

    async def list_templates(self, auth: AuthContext, include_cancelled: bool = False) -> List[SessionTemplate]:
        """All sessions of the organization for editors, otherwise the caller's own sessions."""
        try:
            if auth.capabilities.can_edit_session or auth.capabilities.can_view_reports:
                return await self.db_client.get_session_templates(auth.organization_id, include_cancelled)
            return await self.db_client.get_user_session_templates(auth.organization_id, auth.user_id)
        except Exception as e:
            logger.error(f"Database error while listing sessions for '{auth.user_id}'.", exc_info=True)
            raise ServiceError("A server error occurred while fetching sessions.") from e
