"""Custom DRF permissions for the circle sales-ops API.

Every check goes through :data:`accounts.policy.ROLE_ACTION_MAP` via the
request's :class:`~accounts.session.SessionContext`.
"""
from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from rest_framework.permissions import BasePermission

from accounts.session import get_session


# ---------------------------------------------------------------------------
# Action-aware permission base class
# ---------------------------------------------------------------------------

class _ActionPermission(BasePermission):
    """Grant access when the caller's role holds ``action``.

    Subclasses must set ``action``.
    """

    action = None  # e.g. "CAN_CREATE_EVENT"

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        try:
            session = get_session(request)
        except DjangoPermissionDenied:
            return False
        return session.can(self.action)


class CanSubmitSales(_ActionPermission):
    """Any authenticated employee (or role with CAN_SUBMIT_SALES)."""
    action = "CAN_SUBMIT_SALES"


class CanRaiseIssue(_ActionPermission):
    action = "CAN_RAISE_ISSUE"


class CanCreateEvent(_ActionPermission):
    """ADMIN, GM, CGM, DGM, AGM."""
    action = "CAN_CREATE_EVENT"


class CanApproveSales(_ActionPermission):
    """ADMIN, GM, CGM, DGM, AGM."""
    action = "CAN_APPROVE_SALES"


class CanManageTeam(_ActionPermission):
    action = "CAN_MANAGE_TEAM"


class CanManageIssues(_ActionPermission):
    action = "CAN_MANAGE_ISSUES"


class CanViewReports(_ActionPermission):
    action = "CAN_VIEW_REPORTS"


class CanUpdateStock(_ActionPermission):
    """ADMIN, GM, CGM, DGM."""
    action = "CAN_UPDATE_STOCK"


class CanViewAudit(_ActionPermission):
    action = "CAN_VIEW_AUDIT"


class CanManageHierarchy(_ActionPermission):
    """ADMIN only: master data imports and profile administration."""
    action = "CAN_MANAGE_HIERARCHY"


class CanManageFtthPending(_ActionPermission):
    """ADMIN, GM, CGM, DGM, AGM."""
    action = "CAN_MANAGE_FTTH_PENDING"
