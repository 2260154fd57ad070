import logging
from datetime import datetime, timezone
from typing import Optional

from ..db.db_client import AsyncPostgresClient
from ..models.db_models import AuditAction, DeviceBinding
from .access import AuthContext
from .audit import AuditTrail
from .errors import NotAuthorizedError, NotFoundError, ServiceError

logger = logging.getLogger(__name__)


class DeviceBindingStore:
    """
    Keeps the one-device-per-user binding. The first successful scan binds the
    device; later scans must come from it until a privileged reset.
    """
    def __init__(self, db_client: AsyncPostgresClient, audit: Optional[AuditTrail] = None):
        self.db_client = db_client
        self.audit = audit

    async def get(self, user_id: str) -> Optional[DeviceBinding]:
        try:
            return await self.db_client.get_device_binding(user_id)
        except Exception as e:
            logger.error(f"Database error while reading the device binding of '{user_id}'.", exc_info=True)
            raise ServiceError("A server error occurred while checking your device.") from e

    async def bind(self, user_id: str, device_id: str) -> bool:
        """
        Compare-and-set: binds `device_id` only if the user has no binding yet.
        Returns False when another binding already exists (including one won
        by a concurrent scan).
        """
        binding = DeviceBinding(user_id=user_id, device_id=device_id, bound_at=datetime.now(timezone.utc))
        try:
            created = await self.db_client.create_device_binding(binding)
        except Exception as e:
            logger.error(f"Database error while binding a device to '{user_id}'.", exc_info=True)
            raise ServiceError("A server error occurred while binding your device.") from e
        if created:
            logger.info(f"Device bound to user '{user_id}'.")
        return created

    async def reset(self, auth: AuthContext, user_id: str) -> None:
        """Clears the user's binding so the next scan binds afresh."""
        auth.require("can_reset_device", "reset device bindings")

        try:
            user = await self.db_client.get_user(user_id)
        except Exception as e:
            logger.error(f"Database error while looking up user '{user_id}'.", exc_info=True)
            raise ServiceError("A server error occurred while resetting the device.") from e
        if user is None:
            raise NotFoundError(f"User '{user_id}' not found.")
        if user.organization_id != auth.organization_id:
            logger.warning(f"User '{auth.user_id}' tried to reset the device of '{user_id}' in another organization.")
            raise NotAuthorizedError("You are not allowed to reset this user's device.")

        try:
            removed = await self.db_client.delete_device_binding(user_id)
        except Exception as e:
            logger.error(f"Database error while resetting the device of '{user_id}'.", exc_info=True)
            raise ServiceError("A server error occurred while resetting the device.") from e
        logger.info(f"Device binding of '{user_id}' reset by '{auth.user_id}' (existed: {removed}).")
        if self.audit is not None:
            await self.audit.record(auth, AuditAction.DEVICE_RESET, target_user_id=user_id, details={"had_binding": removed})
