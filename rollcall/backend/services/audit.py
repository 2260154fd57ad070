import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..db.db_client import AsyncPostgresClient
from ..models.db_models import AuditAction, AuditEntry
from .access import AuthContext
from .errors import NotAuthorizedError, ServiceError

logger = logging.getLogger(__name__)


class AuditTrail:
    """
    Append-only log of privileged actions. Writing an entry never fails the
    action being audited: a storage error is logged and swallowed.
    """
    def __init__(self, db_client: AsyncPostgresClient):
        self.db_client = db_client

    async def record(self, auth: AuthContext, action: AuditAction, target_user_id: Optional[str] = None,
                     details: Optional[Dict[str, Any]] = None) -> Optional[AuditEntry]:
        entry = AuditEntry(
            entry_id=uuid4(),
            organization_id=auth.organization_id,
            action=action,
            performed_by=auth.user_id,
            performer_role=auth.role,
            target_user_id=target_user_id,
            details=details or {},
            created_at=datetime.now(timezone.utc),
        )
        try:
            await self.db_client.add_audit_entry(entry)
        except Exception:
            logger.error(f"Could not write audit entry {action.value} by '{auth.user_id}'.", exc_info=True)
            return None
        return entry

    async def list_entries(self, auth: AuthContext, limit: int = 100) -> List[AuditEntry]:
        """Newest entries of the caller's organization."""
        if not (auth.capabilities.can_manage_settings or auth.capabilities.can_reset_device):
            raise NotAuthorizedError("You are not allowed to view the audit log.")
        try:
            return await self.db_client.get_audit_entries(auth.organization_id, limit)
        except Exception as e:
            logger.error("Database error while reading the audit log.", exc_info=True)
            raise ServiceError("A server error occurred while fetching the audit log.") from e
