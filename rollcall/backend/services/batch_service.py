import logging
from datetime import datetime, time, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ..db.db_client import AsyncPostgresClient
from ..models.db_models import ClassBatch, SessionTemplate
from .access import AuthContext
from .errors import InputValidationError, NotAuthorizedError, NotFoundError, ServiceError

logger = logging.getLogger(__name__)


class ClassBatchInput(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    default_start_time: Optional[time] = None
    default_location: Optional[str] = None


class ClassBatchUpdate(BaseModel):
    """Partial update; only the fields that are set are changed."""
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    default_start_time: Optional[time] = None
    default_location: Optional[str] = None


class BatchService:
    """
    Groups of session templates. Editors see every batch of the organization;
    other users see the batches holding at least one of their sessions.
    """
    def __init__(self, db_client: AsyncPostgresClient):
        self.db_client = db_client

    @staticmethod
    def _sees_everything(auth: AuthContext) -> bool:
        return auth.capabilities.can_edit_session or auth.capabilities.can_view_reports

    async def _get_own_batch(self, auth: AuthContext, batch_id: UUID) -> ClassBatch:
        try:
            batch = await self.db_client.get_class_batch(batch_id)
        except Exception as e:
            logger.error(f"Database error while fetching batch {batch_id}.", exc_info=True)
            raise ServiceError("A server error occurred while fetching the batch.") from e
        if batch is None:
            raise NotFoundError("Batch not found.")
        if batch.organization_id != auth.organization_id:
            raise NotAuthorizedError("You are not allowed to access this batch.")
        return batch

    async def _templates_of(self, batch_id: UUID) -> List[SessionTemplate]:
        try:
            return await self.db_client.get_session_templates_by_batches([batch_id])
        except Exception as e:
            logger.error(f"Database error while listing sessions of batch {batch_id}.", exc_info=True)
            raise ServiceError("A server error occurred while fetching the batch sessions.") from e

    async def create_batch(self, auth: AuthContext, draft: ClassBatchInput) -> ClassBatch:
        auth.require("can_edit_session", "create batches")
        batch = ClassBatch(
            **draft.model_dump(),
            batch_id=uuid4(),
            organization_id=auth.organization_id,
            created_by=auth.user_id,
            created_at=datetime.now(timezone.utc),
        )
        try:
            await self.db_client.add_class_batch(batch)
        except Exception as e:
            logger.error(f"Error saving batch '{batch.name}'.", exc_info=True)
            raise ServiceError("A server error occurred while creating the batch.") from e
        logger.info(f"Batch {batch.batch_id} ('{batch.name}') created by '{auth.user_id}'.")
        return batch

    async def list_batches(self, auth: AuthContext) -> List[ClassBatch]:
        try:
            batches = await self.db_client.get_class_batches(auth.organization_id)
            if self._sees_everything(auth):
                return batches
            mine = await self.db_client.get_user_session_templates(auth.organization_id, auth.user_id)
        except Exception as e:
            logger.error(f"Database error while listing batches for '{auth.user_id}'.", exc_info=True)
            raise ServiceError("A server error occurred while fetching batches.") from e
        wanted = {t.batch_id for t in mine if t.batch_id is not None}
        return [batch for batch in batches if batch.batch_id in wanted]

    async def get_batch(self, auth: AuthContext, batch_id: UUID) -> ClassBatch:
        batch = await self._get_own_batch(auth, batch_id)
        if not self._sees_everything(auth):
            templates = await self._templates_of(batch_id)
            if not any(auth.user_id in t.assigned_users for t in templates):
                raise NotAuthorizedError("You are not allowed to access this batch.")
        return batch

    async def list_batch_sessions(self, auth: AuthContext, batch_id: UUID) -> List[SessionTemplate]:
        await self._get_own_batch(auth, batch_id)
        templates = await self._templates_of(batch_id)
        if self._sees_everything(auth):
            return templates
        return [t for t in templates if auth.user_id in t.assigned_users and not t.is_cancelled]

    async def update_batch(self, auth: AuthContext, batch_id: UUID, changes: ClassBatchUpdate) -> ClassBatch:
        auth.require("can_edit_session", "edit batches")
        batch = await self._get_own_batch(auth, batch_id)
        updated = batch.model_copy(update=changes.model_dump(exclude_unset=True))
        if not updated.name:
            raise InputValidationError("Batch name must not be empty.")
        try:
            await self.db_client.update_class_batch(updated)
        except Exception as e:
            logger.error(f"Error updating batch {batch_id}.", exc_info=True)
            raise ServiceError("A server error occurred while updating the batch.") from e
        logger.info(f"Batch {batch_id} updated by '{auth.user_id}'.")
        return updated

    async def delete_batch(self, auth: AuthContext, batch_id: UUID, detach_sessions: bool = False) -> int:
        """
        Deletes the batch and returns how many sessions were detached from it.
        Sessions are never deleted; without `detach_sessions` a batch that
        still holds sessions is kept.
        """
        auth.require("can_edit_session", "delete batches")
        await self._get_own_batch(auth, batch_id)
        templates = await self._templates_of(batch_id)
        if templates and not detach_sessions:
            raise InputValidationError(
                f"This batch has {len(templates)} session(s). Set detach_sessions to delete it anyway."
            )

        try:
            detached = await self.db_client.clear_template_batch(batch_id) if templates else 0
            await self.db_client.delete_class_batch(batch_id)
        except Exception as e:
            logger.error(f"Error deleting batch {batch_id}.", exc_info=True)
            raise ServiceError("A server error occurred while deleting the batch.") from e
        logger.info(f"Batch {batch_id} deleted by '{auth.user_id}' ({detached} session(s) detached).")
        return detached
