"""Per-request session context.

Authentication backends resolve the caller once and hand a
:class:`SessionContext` to the view; views pass it explicitly to the
service layer instead of reading ``request.user`` deep in the stack.
"""
from dataclasses import dataclass

from django.core.exceptions import PermissionDenied

from accounts.policy import role_can


@dataclass(frozen=True)
class SessionContext:
    employee: object

    @property
    def employee_id(self):
        return self.employee.pk

    @property
    def role(self):
        return self.employee.role

    @property
    def circle(self):
        return self.employee.circle

    @property
    def pers_no(self):
        return self.employee.pers_no

    def can(self, action) -> bool:
        return role_can(self.role, action)

    def require(self, action, message=None):
        """Raise ``PermissionDenied`` unless the caller is granted *action*."""
        if not self.can(action):
            raise PermissionDenied(
                message or f"Role {self.role} is not allowed to perform {action}.",
            )

    @property
    def sees_all_circles(self) -> bool:
        return self.can("CAN_VIEW_ALL_CIRCLES")


def get_session(request) -> SessionContext:
    """Return the :class:`SessionContext` for a DRF or Django request."""
    auth = getattr(request, "auth", None)
    if isinstance(auth, SessionContext):
        return auth
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        raise PermissionDenied("Authentication required.")
    return SessionContext(employee=user)
