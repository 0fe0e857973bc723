import os
import tempfile
from datetime import date, timedelta

import mongomock
import pytest

os.environ.setdefault('MONGO_URI', 'mongodb://localhost:27017')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret')
os.environ.setdefault('REMINDER_SCHEDULER_ENABLED', 'false')
os.environ.setdefault('EMAIL_API_URL', '')
os.environ.setdefault('LOG_FILE', os.path.join(tempfile.gettempdir(), 'portal-tests', 'portal.log'))

from fastapi.testclient import TestClient  # noqa: E402

from app.api import appointments, public_appointments  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.db.client import CLIENTS, USERS, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.services.scheduling_service import SchedulingService  # noqa: E402
from tests.helpers import hash_password  # noqa: E402

TODAY = date(2025, 3, 1)


@pytest.fixture
def db():
    return mongomock.MongoClient().db


@pytest.fixture
def add_client(db):
    def _add_client(client_id='C1', email='owner@acme.test', status='active', **extra):
        document = {
            '_id': client_id,
            'company_name': 'Acme SARL',
            'manager_name': 'Jane Manager',
            'status': status,
            'owner': {'name': 'Jane Owner', 'email': email},
            'assigned_consultant_email': 'consultant@firm.test',
            'next_appointment': None,
        }
        document.update(extra)
        db[CLIENTS].insert_one(document)
        return client_id

    return _add_client


@pytest.fixture
def service(db):
    return SchedulingService(db, today=lambda: TODAY)


@pytest.fixture
def api_client(db):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[appointments.get_scheduling_service] = lambda: SchedulingService(db, today=lambda: TODAY)
    app.dependency_overrides[public_appointments.get_scheduling_service] = (
        lambda: SchedulingService(db, today=lambda: TODAY)
    )
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _auth_headers(db, email: str, role: str) -> dict:
    db[USERS].insert_one({
        'email': email,
        'password': hash_password('secret-password'),
        'role': role,
        'full_name': 'Alex Consultant',
        'is_active': True,
    })
    token = create_access_token({'sub': email, 'role': role}, timedelta(minutes=5))
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def consultant_headers(db):
    return _auth_headers(db, 'alex@firm.test', 'consultant')


@pytest.fixture
def client_user_headers(db):
    return _auth_headers(db, 'owner@acme.test', 'client')
