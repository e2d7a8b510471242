"""
Scheduling Service
Doctor availability, slot generation and appointment booking
"""
import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from clinic_app.errors import AlreadyCancelled, Conflict, InvalidInput, NotFound
from clinic_app.models import Appointment, Patient, Staff
from clinic_app.models.appointment import (
    APPOINTMENT_STATUSES,
    APPOINTMENT_TYPES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_SCHEDULED,
)
from clinic_app.services.persistence import transaction
from clinic_app.services.sequence import APPOINTMENT_PREFIX, next_sequence_number
from clinic_app.utils.fields import (
    Field,
    as_date,
    as_int,
    as_text,
    as_time,
    collect_changes,
    one_of,
)
from clinic_app.utils.schedule import SLOT_DURATION_MINUTES, generate_slots, weekday_name

logger = logging.getLogger(__name__)

# Fields a caller may change on an existing appointment
APPOINTMENT_FIELDS = (
    Field('doctor_id', 'doctor_id', as_int),
    Field('appointment_date', 'appointment_date', as_date),
    Field('appointment_time', 'appointment_time', as_time),
    Field('type', 'type', one_of(*APPOINTMENT_TYPES)),
    Field('reason', 'reason', as_text),
    Field('notes', 'notes', as_text),
    Field('status', 'status', one_of(*APPOINTMENT_STATUSES)),
    Field('diagnosis', 'diagnosis', as_text),
    Field('treatment', 'treatment', as_text),
    Field('prescription', 'prescription', as_text),
)

SLOT_COLUMNS = ('doctor_id', 'appointment_date', 'appointment_time')


class SchedulingEngine:
    """
    Computes available slots from a doctor's weekly template and guards the
    one-live-appointment-per-slot rule on every write.

    The slot check runs inside the write transaction; the partial unique index
    on appointments catches writers that pass the check concurrently.
    """

    def __init__(self, session, slot_minutes: int = SLOT_DURATION_MINUTES, max_attempts: int = 3):
        self.session = session
        self.slot_minutes = slot_minutes
        self.max_attempts = max_attempts

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_doctor(self, doctor_id: int) -> Staff:
        doctor = self.session.get(Staff, doctor_id)
        if not doctor or not doctor.is_doctor() or not doctor.is_active:
            raise NotFound('Doctor not found')
        return doctor

    def get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.session.get(Appointment, appointment_id)
        if not appointment:
            raise NotFound('Appointment not found')
        return appointment

    def _get_patient(self, patient_id: int) -> Patient:
        patient = self.session.get(Patient, patient_id)
        if not patient or patient.deleted_at is not None:
            raise NotFound(f'Patient with ID {patient_id} not found')
        return patient

    def _booked_times(self, doctor_id: int, day: date) -> List[str]:
        return list(self.session.execute(
            select(Appointment.appointment_time).where(
                Appointment.doctor_id == doctor_id,
                Appointment.appointment_date == day,
                Appointment.status != STATUS_CANCELLED,
            )
        ).scalars())

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def compute_available_slots(self, doctor_id: int, day: date) -> List[str]:
        """
        Free slot start times ("HH:MM:SS") for a doctor on a date, in order.
        An empty list means the doctor does not work that day or is fully booked.
        """
        doctor = self.get_doctor(doctor_id)
        day_schedule = doctor.working_hours.get(weekday_name(day))
        if not day_schedule or not day_schedule.working:
            return []
        return generate_slots(day_schedule, self._booked_times(doctor_id, day), self.slot_minutes)

    def is_slot_available(self, doctor_id: int, day: date, time: str,
                          exclude_appointment_id: Optional[int] = None) -> bool:
        """True if no live appointment other than the excluded one holds the slot."""
        query = select(Appointment.id).where(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == day,
            Appointment.appointment_time == as_time(time),
            Appointment.status != STATUS_CANCELLED,
        )
        if exclude_appointment_id is not None:
            query = query.where(Appointment.id != exclude_appointment_id)
        return self.session.execute(query.limit(1)).first() is None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def book_appointment(self, data: Dict[str, Any], created_by: Optional[int] = None) -> Appointment:
        """
        Book a slot. Raises Conflict if the slot is taken.

        data keys: patient_id, doctor_id, appointment_date, appointment_time,
        and optionally type, reason, notes.
        """
        for field in ('patient_id', 'doctor_id', 'appointment_date', 'appointment_time'):
            if not data.get(field):
                raise InvalidInput(f'Field "{field}" is required')

        patient_id = as_int(data['patient_id'])
        doctor_id = as_int(data['doctor_id'])
        day = as_date(data['appointment_date'])
        time = as_time(data['appointment_time'])
        appointment_type = one_of(*APPOINTMENT_TYPES)(data.get('type') or 'Consultation')

        self._get_patient(patient_id)
        self.get_doctor(doctor_id)

        for attempt in range(1, self.max_attempts + 1):
            try:
                with transaction(self.session):
                    if not self.is_slot_available(doctor_id, day, time):
                        raise Conflict('Time slot already booked')
                    appointment = Appointment(
                        appointment_number=next_sequence_number(
                            self.session, Appointment, 'appointment_number', APPOINTMENT_PREFIX
                        ),
                        patient_id=patient_id,
                        doctor_id=doctor_id,
                        appointment_date=day,
                        appointment_time=time,
                        type=appointment_type,
                        status=STATUS_SCHEDULED,
                        reason=as_text(data.get('reason')),
                        notes=as_text(data.get('notes')),
                        created_by=created_by,
                    )
                    self.session.add(appointment)
                    self.session.flush()
            except IntegrityError as e:
                # Either the slot or the number was taken by a concurrent writer;
                # the next pass re-checks the slot and allocates a fresh number.
                logger.warning("Booking attempt %d/%d hit a constraint: %s", attempt, self.max_attempts, e.orig)
                continue

            logger.info(
                "Booked %s: doctor %s on %s at %s",
                appointment.appointment_number, doctor_id, day.isoformat(), time,
            )
            return appointment

        raise Conflict('Could not book the appointment, please retry')

    def reschedule_or_update(self, appointment_id: int, changes: Dict[str, Any]) -> Appointment:
        """
        Apply allow-listed changes. Moving an appointment (doctor, date or time)
        or reviving a cancelled one re-checks the target slot first.
        """
        appointment = self.get_appointment(appointment_id)
        values = collect_changes(changes, APPOINTMENT_FIELDS)
        if not values:
            raise InvalidInput('No valid fields to update')

        if 'doctor_id' in values and values['doctor_id'] != appointment.doctor_id:
            self.get_doctor(values['doctor_id'])

        target_status = values.get('status', appointment.status)
        moves_slot = any(
            column in values and values[column] != getattr(appointment, column)
            for column in SLOT_COLUMNS
        )
        revives = appointment.status == STATUS_CANCELLED and target_status != STATUS_CANCELLED

        try:
            with transaction(self.session):
                if target_status != STATUS_CANCELLED and (moves_slot or revives):
                    available = self.is_slot_available(
                        values.get('doctor_id', appointment.doctor_id),
                        values.get('appointment_date', appointment.appointment_date),
                        values.get('appointment_time', appointment.appointment_time),
                        exclude_appointment_id=appointment.id,
                    )
                    if not available:
                        raise Conflict('Time slot already booked')

                for column, value in values.items():
                    setattr(appointment, column, value)
                appointment.updated_at = datetime.utcnow()
                self.session.flush()
        except IntegrityError:
            raise Conflict('Time slot already booked')

        logger.info("Updated appointment %s: %s", appointment.appointment_number, ", ".join(values))
        return appointment

    def cancel(self, appointment_id: int, reason: str = '') -> Appointment:
        """Cancel an appointment and free its slot."""
        appointment = self.get_appointment(appointment_id)
        if appointment.status == STATUS_CANCELLED:
            raise AlreadyCancelled('Appointment is already cancelled')

        with transaction(self.session):
            appointment.status = STATUS_CANCELLED
            appointment.cancellation_reason = as_text(reason)
            appointment.updated_at = datetime.utcnow()

        logger.info("Cancelled appointment %s", appointment.appointment_number)
        return appointment

    def complete(self, appointment_id: int, diagnosis: str = '', treatment: str = '',
                 prescription: str = '') -> Appointment:
        """Mark an appointment completed and record the clinical outcome."""
        appointment = self.get_appointment(appointment_id)
        if appointment.status == STATUS_CANCELLED:
            raise InvalidInput('Cannot complete a cancelled appointment')

        with transaction(self.session):
            appointment.status = STATUS_COMPLETED
            appointment.diagnosis = as_text(diagnosis)
            appointment.treatment = as_text(treatment)
            appointment.prescription = as_text(prescription)
            appointment.updated_at = datetime.utcnow()

        logger.info("Completed appointment %s", appointment.appointment_number)
        return appointment

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_appointments(
        self,
        status: Optional[str] = None,
        doctor_id: Optional[int] = None,
        patient_id: Optional[int] = None,
        day: Optional[date] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        query = select(Appointment)
        if status:
            query = query.where(Appointment.status == status)
        if doctor_id:
            query = query.where(Appointment.doctor_id == doctor_id)
        if patient_id:
            query = query.where(Appointment.patient_id == patient_id)
        if day:
            query = query.where(Appointment.appointment_date == day)

        total = self.session.execute(
            select(func.count()).select_from(query.subquery())
        ).scalar_one()
        appointments = self.session.execute(
            query.order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        ).scalars().all()

        return {
            'appointments': appointments,
            'total': total,
            'page': page,
            'limit': limit,
            'pages': math.ceil(total / limit) if limit else 0,
        }

    def daily_schedule(self, day: date) -> List[Appointment]:
        """All live appointments on a date, ordered by time."""
        return self.session.execute(
            select(Appointment)
            .where(Appointment.appointment_date == day, Appointment.status != STATUS_CANCELLED)
            .order_by(Appointment.appointment_time, Appointment.doctor_id)
        ).scalars().all()

    def upcoming_for_doctor(self, doctor_id: int, limit: int = 10) -> List[Appointment]:
        return self._upcoming(Appointment.doctor_id == doctor_id, limit)

    def upcoming_for_patient(self, patient_id: int, limit: int = 10) -> List[Appointment]:
        return self._upcoming(Appointment.patient_id == patient_id, limit)

    def _upcoming(self, criterion, limit):
        return self.session.execute(
            select(Appointment)
            .where(
                criterion,
                Appointment.appointment_date >= date.today(),
                Appointment.status == STATUS_SCHEDULED,
            )
            .order_by(Appointment.appointment_date, Appointment.appointment_time)
            .limit(limit)
        ).scalars().all()

    def doctor_day(self, doctor_id: int, day: date) -> Dict[str, Any]:
        """A doctor's appointments for a date plus the working hours for that weekday."""
        doctor = self.get_doctor(doctor_id)
        appointments = self.session.execute(
            select(Appointment)
            .where(Appointment.doctor_id == doctor_id, Appointment.appointment_date == day)
            .order_by(Appointment.appointment_time)
        ).scalars().all()
        day_schedule = doctor.working_hours.get(weekday_name(day))
        return {
            'date': day,
            'appointments': appointments,
            'working_hours': day_schedule.to_dict() if day_schedule else None,
        }
