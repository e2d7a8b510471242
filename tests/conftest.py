"""
Shared pytest fixtures: an app on in-memory SQLite, staff accounts,
a doctor with a weekday schedule, a patient and JWT headers.
"""
import json
from datetime import date, timedelta

import pytest
from flask_jwt_extended import create_access_token

from clinic_app import create_app
from clinic_app.extensions import db as _db
from clinic_app.models import Patient, Staff

WEEKDAY_SCHEDULE = {
    'Monday': {'working': True, 'start': '09:00', 'end': '17:00'},
    'Tuesday': {'working': True, 'start': '09:00', 'end': '17:00'},
    'Wednesday': {'working': True, 'start': '09:00', 'end': '17:00'},
    'Thursday': {'working': True, 'start': '09:00', 'end': '17:00'},
    'Friday': {'working': True, 'start': '09:00', 'end': '17:00'},
    'Saturday': {'working': False},
}


def next_weekday(weekday):
    """The next date strictly after today falling on weekday (0 = Monday)."""
    today = date.today()
    days_ahead = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=days_ahead)


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def session(db):
    return db.session


@pytest.fixture
def client(app):
    return app.test_client()


def _make_staff(session, username, role, **extra):
    staff = Staff(
        username=username,
        email=f'{username}@clinic.test',
        first_name=username.capitalize(),
        last_name='Tester',
        role=role,
        is_active=True,
        **extra
    )
    staff.set_password('secret123')
    session.add(staff)
    session.commit()
    return staff


@pytest.fixture
def admin(session):
    return _make_staff(session, 'admin', 'admin')


@pytest.fixture
def receptionist(session):
    return _make_staff(session, 'reception', 'receptionist')


@pytest.fixture
def accountant(session):
    return _make_staff(session, 'accounts', 'accountant')


@pytest.fixture
def nurse(session):
    return _make_staff(session, 'nurse', 'nurse')


@pytest.fixture
def doctor(session):
    return _make_staff(
        session, 'drhouse', 'doctor',
        specialization='General Medicine',
        schedule=json.dumps(WEEKDAY_SCHEDULE),
    )


@pytest.fixture
def other_doctor(session):
    return _make_staff(
        session, 'drwho', 'doctor',
        specialization='Cardiology',
        schedule=json.dumps(WEEKDAY_SCHEDULE),
    )


@pytest.fixture
def patient(session):
    patient = Patient(
        patient_number='P0001',
        first_name='Jane',
        last_name='Doe',
        phone='555-0100',
        email='jane.doe@example.com',
    )
    session.add(patient)
    session.commit()
    return patient


@pytest.fixture
def monday():
    return next_weekday(0)


@pytest.fixture
def saturday():
    return next_weekday(5)


@pytest.fixture
def sunday():
    return next_weekday(6)


@pytest.fixture
def auth_headers(app):
    def make(staff):
        token = create_access_token(identity=str(staff.id), additional_claims={'role': staff.role})
        return {'Authorization': f'Bearer {token}'}
    return make
