import logging
from typing import Optional

from pydantic import ValidationError

from ..db.db_client import AsyncPostgresClient
from ..models.db_models import OrganizationSettings
from .access import AuthContext
from .errors import InputValidationError, ServiceError

logger = logging.getLogger(__name__)


class OrganizationService:
    """
    Per-organization attendance rules. Organizations that never saved settings
    get the configured defaults.
    """
    def __init__(self, db_client: AsyncPostgresClient, default_late_grace_minutes: int = 30):
        self.db_client = db_client
        self.default_late_grace_minutes = default_late_grace_minutes

    async def settings_for(self, organization_id: str) -> OrganizationSettings:
        try:
            stored = await self.db_client.get_organization_settings(organization_id)
        except Exception as e:
            logger.error(f"Database error while reading settings of organization '{organization_id}'.", exc_info=True)
            raise ServiceError("A server error occurred while reading organization settings.") from e
        if stored is None:
            return OrganizationSettings(
                organization_id=organization_id, late_attendance_limit=self.default_late_grace_minutes
            )
        return stored

    async def get_settings(self, auth: AuthContext) -> OrganizationSettings:
        auth.require("can_manage_settings", "view organization settings")
        return await self.settings_for(auth.organization_id)

    async def update_settings(self, auth: AuthContext, late_attendance_limit: Optional[int] = None,
                              strict_attendance: Optional[bool] = None) -> OrganizationSettings:
        auth.require("can_manage_settings", "change organization settings")
        current = await self.settings_for(auth.organization_id)
        changes = {}
        if late_attendance_limit is not None:
            changes["late_attendance_limit"] = late_attendance_limit
        if strict_attendance is not None:
            changes["strict_attendance"] = strict_attendance
        try:
            updated = OrganizationSettings.model_validate({**current.model_dump(), **changes})
        except ValidationError as e:
            raise InputValidationError(f"Invalid organization settings: {e.errors()[0]['msg']}") from e

        try:
            saved = await self.db_client.upsert_organization_settings(updated)
        except Exception as e:
            logger.error(f"Database error while saving settings of organization '{auth.organization_id}'.", exc_info=True)
            raise ServiceError("A server error occurred while saving organization settings.") from e
        logger.info(f"Organization '{auth.organization_id}' settings updated by '{auth.user_id}': {changes}")
        return saved
