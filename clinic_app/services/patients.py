"""
Patient records service
"""
import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError

from clinic_app.errors import Conflict, InvalidInput, NotFound
from clinic_app.models import Appointment, Patient
from clinic_app.models.appointment import STATUS_CANCELLED, STATUS_COMPLETED
from clinic_app.services.persistence import transaction
from clinic_app.services.sequence import PATIENT_PREFIX, next_sequence_number
from clinic_app.utils.fields import (
    Field,
    as_json,
    as_optional_date,
    as_required_text,
    as_text,
    collect_changes,
    one_of,
)

logger = logging.getLogger(__name__)

GENDERS = ('Male', 'Female', 'Other')
BLOOD_GROUPS = ('A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-')


def _optional(convert):
    def wrapper(value):
        if value in (None, ''):
            return None
        return convert(value)
    return wrapper


PATIENT_FIELDS = (
    Field('first_name', 'first_name', as_required_text),
    Field('last_name', 'last_name', as_required_text),
    Field('date_of_birth', 'date_of_birth', as_optional_date),
    Field('gender', 'gender', _optional(one_of(*GENDERS))),
    Field('phone', 'phone', as_required_text),
    Field('email', 'email', as_text),
    Field('address', 'address', as_text),
    Field('emergency_contact', 'emergency_contact', as_text),
    Field('emergency_phone', 'emergency_phone', as_text),
    Field('medical_history', 'medical_history', as_text),
    Field('allergies', 'allergies', as_text),
    Field('blood_group', 'blood_group', _optional(one_of(*BLOOD_GROUPS))),
    Field('insurance_info', 'insurance_info', as_json),
)

REQUIRED_FIELDS = ('first_name', 'last_name', 'phone')


class PatientService:

    def __init__(self, session, max_attempts: int = 3):
        self.session = session
        self.max_attempts = max_attempts

    def get_patient(self, patient_id: int) -> Patient:
        patient = self.session.get(Patient, patient_id)
        if not patient or patient.deleted_at is not None:
            raise NotFound('Patient not found')
        return patient

    def _check_unique(self, phone=None, email=None, exclude_id=None):
        for column, value, label in ((Patient.phone, phone, 'Phone number'), (Patient.email, email, 'Email')):
            if not value:
                continue
            query = select(Patient.id).where(column == value)
            if exclude_id is not None:
                query = query.where(Patient.id != exclude_id)
            if self.session.execute(query.limit(1)).first():
                raise Conflict(f'{label} already exists')

    def create_patient(self, data: Dict[str, Any], created_by: Optional[int] = None) -> Patient:
        for field in REQUIRED_FIELDS:
            if not data.get(field):
                raise InvalidInput(f'Field "{field}" is required')

        values = collect_changes(data, PATIENT_FIELDS)
        self._check_unique(values.get('phone'), values.get('email'))

        for attempt in range(1, self.max_attempts + 1):
            try:
                with transaction(self.session):
                    patient = Patient(
                        patient_number=next_sequence_number(self.session, Patient, 'patient_number', PATIENT_PREFIX),
                        created_by=created_by,
                        **values
                    )
                    self.session.add(patient)
                    self.session.flush()
            except IntegrityError as e:
                # A concurrent writer may have taken the phone or email rather than the number
                self._check_unique(values.get('phone'), values.get('email'))
                logger.warning("Patient number collision on attempt %d/%d: %s", attempt, self.max_attempts, e.orig)
                continue

            logger.info("Created patient %s", patient.patient_number)
            return patient

        raise Conflict('Could not allocate a patient number, please retry')

    def list_patients(self, search: str = '', page: int = 1, limit: int = 10) -> Dict[str, Any]:
        query = select(Patient).where(Patient.deleted_at.is_(None))
        if search:
            pattern = f'%{search}%'
            query = query.where(or_(
                Patient.first_name.ilike(pattern),
                Patient.last_name.ilike(pattern),
                Patient.phone.ilike(pattern),
                Patient.email.ilike(pattern),
                Patient.patient_number.ilike(pattern),
            ))

        total = self.session.execute(select(func.count()).select_from(query.subquery())).scalar_one()
        patients = self.session.execute(
            query.order_by(Patient.created_at.desc(), Patient.id.desc()).limit(limit).offset((page - 1) * limit)
        ).scalars().all()
        return {
            'patients': patients,
            'total': total,
            'page': page,
            'limit': limit,
            'pages': math.ceil(total / limit) if limit else 0,
        }

    def update_patient(self, patient_id: int, changes: Dict[str, Any]) -> Patient:
        patient = self.get_patient(patient_id)
        values = collect_changes(changes, PATIENT_FIELDS)
        if not values:
            raise InvalidInput('No valid fields to update')
        self._check_unique(values.get('phone'), values.get('email'), exclude_id=patient.id)

        try:
            with transaction(self.session):
                for column, value in values.items():
                    setattr(patient, column, value)
                patient.updated_at = datetime.utcnow()
        except IntegrityError:
            raise Conflict('Phone number or email already exists')

        logger.info("Updated patient %s: %s", patient.patient_number, ", ".join(values))
        return patient

    def delete_patient(self, patient_id: int) -> Patient:
        """Soft delete. Refused while the patient has upcoming live appointments."""
        patient = self.get_patient(patient_id)
        upcoming = self.session.execute(
            select(func.count(Appointment.id)).where(
                Appointment.patient_id == patient.id,
                Appointment.appointment_date >= date.today(),
                Appointment.status != STATUS_CANCELLED,
            )
        ).scalar_one()
        if upcoming:
            raise Conflict('Cannot delete patient with upcoming appointments')

        with transaction(self.session):
            patient.deleted_at = datetime.utcnow()
            patient.is_active = False

        logger.info("Soft-deleted patient %s", patient.patient_number)
        return patient

    def medical_history(self, patient_id: int) -> List[Appointment]:
        """Completed appointments, most recent first."""
        patient = self.get_patient(patient_id)
        return self.session.execute(
            select(Appointment)
            .where(Appointment.patient_id == patient.id, Appointment.status == STATUS_COMPLETED)
            .order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc())
        ).scalars().all()
