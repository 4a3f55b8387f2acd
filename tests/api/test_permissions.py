import pytest
from django.contrib.auth.models import AnonymousUser

from accounts.session import SessionContext
from api.v1.permissions import (
    CanApproveSales,
    CanCreateEvent,
    CanManageFtthPending,
    CanManageHierarchy,
    CanManageIssues,
    CanSubmitSales,
    CanUpdateStock,
    CanViewAudit,
)


class DummyView:
    def __init__(self, kwargs=None):
        self.kwargs = kwargs or {}


class DummyRequest:
    def __init__(self, user, auth=None, method="GET"):
        self.user = user
        self.auth = auth
        self.method = method


@pytest.mark.django_db
@pytest.mark.parametrize(
    "permission_class, allowed",
    [
        (CanSubmitSales, {"admin_user", "gm_user", "dgm_user", "agm_user", "jto_user", "staff_user"}),
        (CanCreateEvent, {"admin_user", "gm_user", "dgm_user", "agm_user"}),
        (CanApproveSales, {"admin_user", "gm_user", "dgm_user", "agm_user"}),
        (CanManageIssues, {"admin_user", "gm_user", "dgm_user", "agm_user", "jto_user"}),
        (CanUpdateStock, {"admin_user", "gm_user", "dgm_user"}),
        (CanViewAudit, {"admin_user", "gm_user"}),
        (CanManageHierarchy, {"admin_user"}),
        (CanManageFtthPending, {"admin_user", "gm_user", "dgm_user", "agm_user"}),
    ],
)
def test_action_permissions_follow_role_table(request, permission_class, allowed):
    for fixture in ("admin_user", "gm_user", "dgm_user", "agm_user", "jto_user", "staff_user"):
        employee = request.getfixturevalue(fixture)
        granted = permission_class().has_permission(DummyRequest(user=employee), DummyView())
        assert granted is (fixture in allowed), (permission_class.__name__, fixture)


def test_anonymous_is_denied():
    assert CanSubmitSales().has_permission(DummyRequest(user=AnonymousUser()), DummyView()) is False


@pytest.mark.django_db
def test_header_session_is_used_when_present(staff_user):
    request = DummyRequest(user=staff_user, auth=SessionContext(employee=staff_user), method="POST")
    assert CanSubmitSales().has_permission(request, DummyView()) is True
    assert CanCreateEvent().has_permission(request, DummyView()) is False
