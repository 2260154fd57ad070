# rollcall/backend/services/access.py

from dataclasses import dataclass

from ..models.db_models import Role, User
from .errors import NotAuthorizedError


@dataclass(frozen=True)
class Capabilities:
    can_force_mark: bool = False
    can_edit_session: bool = False
    can_view_reports: bool = False
    can_review_leave: bool = False
    can_reset_device: bool = False
    can_manage_settings: bool = False


def capabilities_for(role: Role) -> Capabilities:
    """Derives what a role may do. Computed once per request."""
    return Capabilities(
        can_force_mark=role in (Role.SUPER_ADMIN, Role.COMPANY_ADMIN, Role.MANAGER, Role.SESSION_ADMIN),
        can_edit_session=role in (Role.SUPER_ADMIN, Role.COMPANY_ADMIN, Role.MANAGER),
        can_view_reports=role in (Role.SUPER_ADMIN, Role.MANAGER),
        can_review_leave=role in (Role.SUPER_ADMIN, Role.COMPANY_ADMIN, Role.MANAGER, Role.SESSION_ADMIN),
        can_reset_device=role in (Role.SUPER_ADMIN, Role.COMPANY_ADMIN),
        can_manage_settings=role == Role.SUPER_ADMIN,
    )


@dataclass(frozen=True)
class AuthContext:
    """
    The authenticated caller, passed explicitly into every service operation.
    """
    user_id: str
    role: Role
    organization_id: str
    capabilities: Capabilities

    @classmethod
    def for_user(cls, user: User) -> "AuthContext":
        return cls(
            user_id=user.user_id,
            role=user.role,
            organization_id=user.organization_id,
            capabilities=capabilities_for(user.role),
        )

    def require(self, capability: str, action: str):
        if not getattr(self.capabilities, capability):
            raise NotAuthorizedError(f"You are not allowed to {action}.")
