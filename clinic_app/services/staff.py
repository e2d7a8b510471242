"""
Staff management service. The only writer of a doctor's working schedule.
"""
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError

from clinic_app.errors import Conflict, InvalidInput, NotFound
from clinic_app.models import Staff
from clinic_app.models.staff import ROLES
from clinic_app.services.persistence import transaction
from clinic_app.utils.fields import Field, as_bool, as_required_text, as_text, collect_changes, one_of
from clinic_app.utils.schedule import dump_schedule, validate_schedule

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def as_schedule(value):
    if value is None:
        return None
    return dump_schedule(validate_schedule(value))


STAFF_FIELDS = (
    Field('email', 'email', as_required_text),
    Field('first_name', 'first_name', as_required_text),
    Field('last_name', 'last_name', as_required_text),
    Field('phone', 'phone', as_text),
    Field('role', 'role', one_of(*ROLES)),
    Field('specialization', 'specialization', as_text),
    Field('license_number', 'license_number', as_text),
    Field('qualification', 'qualification', as_text),
    Field('schedule', 'schedule', as_schedule),
    Field('is_active', 'is_active', as_bool),
)

REQUIRED_FIELDS = ('username', 'email', 'password', 'first_name', 'last_name', 'role')


class StaffService:

    def __init__(self, session):
        self.session = session

    def get_staff(self, staff_id: int) -> Staff:
        staff = self.session.get(Staff, staff_id)
        if not staff:
            raise NotFound('Staff member not found')
        return staff

    def _check_unique(self, username=None, email=None, exclude_id=None):
        for column, value, label in ((Staff.username, username, 'Username'), (Staff.email, email, 'Email')):
            if not value:
                continue
            query = select(Staff.id).where(column == value)
            if exclude_id is not None:
                query = query.where(Staff.id != exclude_id)
            if self.session.execute(query.limit(1)).first():
                raise Conflict(f'{label} already exists')

    def create_staff(self, data: Dict[str, Any]) -> Staff:
        for field in REQUIRED_FIELDS:
            if not data.get(field):
                raise InvalidInput(f'Field "{field}" is required')
        password = str(data['password'])
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidInput(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')

        username = as_required_text(data['username'])
        values = collect_changes(data, STAFF_FIELDS)
        self._check_unique(username, values.get('email'))

        staff = Staff(username=username, **values)
        staff.set_password(password)
        try:
            with transaction(self.session):
                self.session.add(staff)
        except IntegrityError:
            raise Conflict('Username or email already exists')

        logger.info("Created %s account %s", staff.role, staff.username)
        return staff

    def list_staff(self, search: str = '', role: Optional[str] = None,
                   page: int = 1, limit: int = 10) -> Dict[str, Any]:
        query = select(Staff)
        if search:
            pattern = f'%{search}%'
            query = query.where(or_(
                Staff.first_name.ilike(pattern),
                Staff.last_name.ilike(pattern),
                Staff.email.ilike(pattern),
                Staff.username.ilike(pattern),
            ))
        if role:
            query = query.where(Staff.role == one_of(*ROLES)(role))

        total = self.session.execute(select(func.count()).select_from(query.subquery())).scalar_one()
        staff = self.session.execute(
            query.order_by(Staff.created_at.desc(), Staff.id.desc()).limit(limit).offset((page - 1) * limit)
        ).scalars().all()
        return {
            'staff': staff,
            'total': total,
            'page': page,
            'limit': limit,
            'pages': math.ceil(total / limit) if limit else 0,
        }

    def list_doctors(self) -> List[Staff]:
        """Active doctors, by name."""
        return self.session.execute(
            select(Staff)
            .where(Staff.role == 'doctor', Staff.is_active.is_(True))
            .order_by(Staff.first_name, Staff.last_name)
        ).scalars().all()

    def update_staff(self, staff_id: int, changes: Dict[str, Any]) -> Staff:
        staff = self.get_staff(staff_id)
        values = collect_changes(changes, STAFF_FIELDS)
        password = changes.get('password')
        if not values and not password:
            raise InvalidInput('No valid fields to update')
        if password is not None and len(str(password)) < MIN_PASSWORD_LENGTH:
            raise InvalidInput(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
        self._check_unique(email=values.get('email'), exclude_id=staff.id)

        try:
            with transaction(self.session):
                for column, value in values.items():
                    setattr(staff, column, value)
                if password:
                    staff.set_password(str(password))
                staff.updated_at = datetime.utcnow()
        except IntegrityError:
            raise Conflict('Email already exists')

        logger.info("Updated staff %s: %s", staff.username, ", ".join(values) or 'password')
        return staff
