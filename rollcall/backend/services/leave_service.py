import logging
from datetime import date, datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from ..db.db_client import AsyncPostgresClient
from ..models.db_models import AuditAction, LeaveRequest, LeaveStatus, LeaveType, PopulatedUser, UserRef, UserReference
from .access import AuthContext
from .audit import AuditTrail
from .errors import InputValidationError, NotAuthorizedError, NotFoundError, ServiceError

logger = logging.getLogger(__name__)


class LeaveWithUser(LeaveRequest):
    """Leave request carrying its applicant, resolved when the user record exists."""
    user: UserReference


class LeaveOverlayResolver:
    """Finds the approved leave, if any, that covers a user's occurrence date."""

    def __init__(self, db_client: AsyncPostgresClient):
        self.db_client = db_client

    async def resolve(self, user_id: str, day: date) -> Optional[LeaveRequest]:
        try:
            leave = await self.db_client.find_approved_leave(user_id, day)
        except Exception as e:
            logger.error(f"Database error while resolving leave of '{user_id}' on {day}.", exc_info=True)
            raise ServiceError("A server error occurred while checking leave requests.") from e
        # The query already filters; covers() guards against rows with stale date lists.
        return leave if leave and leave.covers(day) else None


class LeaveService:
    """
    Leave application and review workflow.
    """
    def __init__(self, db_client: AsyncPostgresClient, audit: Optional[AuditTrail] = None):
        self.db_client = db_client
        self.audit = audit

    async def apply_leave(self, auth: AuthContext, leave_type: LeaveType, start_date: date, end_date: date,
                          reason: str, dates: Optional[List[date]] = None) -> LeaveRequest:
        if start_date > end_date:
            raise InputValidationError("start_date must not be after end_date.")
        explicit = sorted(set(dates or []))
        if any(day < start_date or day > end_date for day in explicit):
            raise InputValidationError("Every explicit leave date must lie between start_date and end_date.")

        days_count = len(explicit) if explicit else (end_date - start_date).days + 1
        leave = LeaveRequest(
            leave_id=uuid4(),
            user_id=auth.user_id,
            organization_id=auth.organization_id,
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            dates=explicit,
            days_count=days_count,
            reason=reason,
            status=LeaveStatus.PENDING,
            created_at=datetime.now(timezone.utc),
        )
        try:
            await self.db_client.add_leave_request(leave)
        except Exception as e:
            logger.error(f"Error saving leave request of '{auth.user_id}'.", exc_info=True)
            raise ServiceError("A server error occurred while applying for leave.") from e

        logger.info(f"Leave {leave.leave_id} ({leave_type.value}, {days_count} day(s)) requested by '{auth.user_id}'.")
        return leave

    async def list_my_leaves(self, auth: AuthContext) -> List[LeaveRequest]:
        try:
            return await self.db_client.get_leave_requests(user_id=auth.user_id)
        except Exception as e:
            logger.error(f"Error listing leaves of '{auth.user_id}'.", exc_info=True)
            raise ServiceError("A server error occurred while fetching your leave requests.") from e

    async def list_organization_leaves(self, auth: AuthContext, status: Optional[LeaveStatus] = None,
                                       leave_type: Optional[LeaveType] = None,
                                       user_id: Optional[str] = None) -> List[LeaveWithUser]:
        auth.require("can_review_leave", "view leave requests of the organization")
        try:
            leaves = await self.db_client.get_leave_requests(
                organization_id=auth.organization_id, user_id=user_id, status=status, leave_type=leave_type
            )
            users = await self.db_client.get_users(list({leave.user_id for leave in leaves}))
        except Exception as e:
            logger.error("Database error while listing organization leaves.", exc_info=True)
            raise ServiceError("A server error occurred while fetching leave requests.") from e

        user_map = {user.user_id: user for user in users}
        enriched = []
        for leave in leaves:
            user = user_map.get(leave.user_id)
            if user is None:
                logger.warning(f"User data not found for applicant '{leave.user_id}' of leave {leave.leave_id}.")
                reference = UserRef(user_id=leave.user_id)
            else:
                reference = PopulatedUser(user=user)
            enriched.append(LeaveWithUser(**leave.model_dump(), user=reference))
        return enriched

    async def review_leave(self, auth: AuthContext, leave_id: UUID, status: LeaveStatus,
                           rejection_reason: Optional[str] = None) -> LeaveRequest:
        auth.require("can_review_leave", "review leave requests")
        if status == LeaveStatus.PENDING:
            raise InputValidationError("A leave can only be Approved or Rejected.")
        if status == LeaveStatus.REJECTED and not (rejection_reason and rejection_reason.strip()):
            raise InputValidationError("A rejection reason is required.")

        try:
            leave = await self.db_client.get_leave_request(leave_id)
        except Exception as e:
            logger.error(f"Database error while fetching leave {leave_id}.", exc_info=True)
            raise ServiceError("A server error occurred while reviewing the leave.") from e
        if leave is None:
            raise NotFoundError("Leave request not found.")
        if leave.organization_id != auth.organization_id:
            logger.warning(f"User '{auth.user_id}' tried to review leave {leave_id} of another organization.")
            raise NotAuthorizedError("You are not allowed to review this leave request.")
        if leave.status != LeaveStatus.PENDING:
            raise InputValidationError(f"This leave request is already {leave.status.value}.")

        try:
            updated = await self.db_client.update_leave_status(
                leave_id, status, approved_by=auth.user_id,
                rejection_reason=rejection_reason if status == LeaveStatus.REJECTED else None,
            )
        except Exception as e:
            logger.error(f"Database error while updating leave {leave_id}.", exc_info=True)
            raise ServiceError("A server error occurred while reviewing the leave.") from e
        if updated is None:
            raise InputValidationError("This leave request has already been reviewed.")

        logger.info(f"Leave {leave_id} {status.value} by '{auth.user_id}'.")
        if self.audit is not None:
            await self.audit.record(
                auth, AuditAction.LEAVE_REVIEW, target_user_id=updated.user_id,
                details={"leave_id": str(leave_id), "status": status.value},
            )
        return updated
