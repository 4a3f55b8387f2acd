from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import Employee
from accounts.session import SessionContext
from events.models import Event
from resources.models import Resource


def _employee(email, name, role, circle="KARNATAKA", **extra):
    return Employee.objects.create_user(
        email=email,
        password="testpass123",
        name=name,
        role=role,
        circle=circle,
        **extra,
    )


@pytest.fixture
def admin_user(db):
    return _employee("admin@test.com", "Admin User", Employee.Role.ADMIN)


@pytest.fixture
def gm_user(db):
    return _employee("gm@test.com", "Gita Manager", Employee.Role.GM)


@pytest.fixture
def dgm_user(db):
    return _employee("dgm@test.com", "Deepak Dgm", Employee.Role.DGM)


@pytest.fixture
def agm_user(db):
    return _employee("agm@test.com", "Anil Agm", Employee.Role.AGM)


@pytest.fixture
def jto_user(db):
    return _employee("jto@test.com", "Jaya Jto", Employee.Role.SD_JTO)


@pytest.fixture
def staff_user(db):
    return _employee("staff@test.com", "Sunil Staff", Employee.Role.SALES_STAFF, pers_no="90001")


@pytest.fixture
def other_staff_user(db):
    return _employee("staff2@test.com", "Rekha Staff", Employee.Role.SALES_STAFF, pers_no="90002")


@pytest.fixture
def session_for():
    """Build a SessionContext for any employee."""
    return lambda employee: SessionContext(employee=employee)


@pytest.fixture
def sim_stock(db):
    return Resource.objects.create(circle="KARNATAKA", type=Resource.Type.SIM, total=100, remaining=100)


@pytest.fixture
def ftth_stock(db):
    return Resource.objects.create(circle="KARNATAKA", type=Resource.Type.FTTH, total=50, remaining=50)


@pytest.fixture
def event_factory(dgm_user):
    def _create(**overrides):
        now = timezone.now()
        fields = {
            "name": "Dasara Mela",
            "location": "Mysuru Palace Grounds",
            "circle": "KARNATAKA",
            "zone": "Mysuru",
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=2),
            "category": Event.Category.FAIR,
            "created_by": dgm_user,
        }
        fields.update(overrides)
        return Event.objects.create(**fields)

    return _create


@pytest.fixture
def event(event_factory):
    return event_factory()


@pytest.fixture
def api_client():
    return APIClient()
