from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from clinic_app.extensions import db
from clinic_app.errors import InvalidInput
from clinic_app.models import Staff
from clinic_app.models.appointment import STATUS_CANCELLED
from clinic_app.services import notifications
from clinic_app.services.scheduling import SchedulingEngine
from clinic_app.utils.audit import log_audit
from clinic_app.utils.decorators import require_role, current_staff_id
from clinic_app.utils.fields import as_date
from clinic_app.utils.pagination import get_pagination, pagination_meta
from datetime import date

appointment_bp = Blueprint('appointment', __name__, url_prefix='/api/appointments')

BOOKING_ROLES = ('admin', 'receptionist', 'doctor')


def _engine():
    return SchedulingEngine(
        db.session,
        slot_minutes=current_app.config['SLOT_DURATION_MINUTES'],
        max_attempts=current_app.config['BOOKING_MAX_ATTEMPTS'],
    )


def _json_body():
    data = request.get_json(silent=True)
    if not data:
        raise InvalidInput('Request body must be JSON')
    return data


@appointment_bp.route('', methods=['GET'])
@jwt_required()
def list_appointments():
    """
    List appointments with filters and pagination.
    Query params: status, doctor_id, patient_id, date (YYYY-MM-DD), page, limit
    A doctor sees their own appointments unless doctor_id is given.
    """
    # Step 1: Get query parameters
    page, limit = get_pagination()
    status = request.args.get('status', type=str)
    doctor_id = request.args.get('doctor_id', type=int)
    patient_id = request.args.get('patient_id', type=int)
    filter_date = request.args.get('date', type=str)

    # Step 2: Doctors default to their own schedule
    if not doctor_id:
        current_user = db.session.get(Staff, current_staff_id())
        if current_user and current_user.is_doctor():
            doctor_id = current_user.id

    # Step 3: Query
    result = _engine().list_appointments(
        status=status,
        doctor_id=doctor_id,
        patient_id=patient_id,
        day=as_date(filter_date) if filter_date else None,
        page=page,
        limit=limit,
    )

    return jsonify({
        'success': True,
        'data': [a.to_dict() for a in result['appointments']],
        'pagination': pagination_meta(result)
    }), 200


@appointment_bp.route('/<int:appointment_id>', methods=['GET'])
@jwt_required()
def get_appointment(appointment_id):
    appointment = _engine().get_appointment(appointment_id)
    return jsonify({
        'success': True,
        'data': appointment.to_dict()
    }), 200


@appointment_bp.route('', methods=['POST'])
@jwt_required()
@require_role(*BOOKING_ROLES)
def create_appointment():
    """
    Book an appointment
    Body: { patient_id, doctor_id, appointment_date, appointment_time, type?, reason?, notes? }
    Access: admin, receptionist, doctor
    """
    data = _json_body()
    user_id = current_staff_id()

    appointment = _engine().book_appointment(data, created_by=user_id)

    log_audit('appointment', 'create', user_id=user_id, entity_id=appointment.id,
              details={'appointment_number': appointment.appointment_number})
    notifications.notify(notifications.appointment_booked, appointment)

    return jsonify({
        'success': True,
        'data': appointment.to_dict(),
        'message': 'Appointment booked successfully'
    }), 201


@appointment_bp.route('/<int:appointment_id>', methods=['PUT'])
@jwt_required()
@require_role(*BOOKING_ROLES)
def update_appointment(appointment_id):
    """
    Update or reschedule an appointment
    Access: admin, receptionist, doctor
    """
    data = _json_body()
    engine = _engine()

    before = engine.get_appointment(appointment_id)
    previous_slot = (before.doctor_id, before.appointment_date, before.appointment_time)
    previous_status = before.status

    appointment = engine.reschedule_or_update(appointment_id, data)

    log_audit('appointment', 'update', user_id=current_staff_id(), entity_id=appointment.id,
              details={'fields': sorted(k for k in data)})

    if appointment.status == STATUS_CANCELLED and previous_status != STATUS_CANCELLED:
        notifications.notify(notifications.appointment_cancelled, appointment)
    elif previous_slot != (appointment.doctor_id, appointment.appointment_date, appointment.appointment_time):
        notifications.notify(notifications.appointment_rescheduled, appointment)

    return jsonify({
        'success': True,
        'data': appointment.to_dict(),
        'message': 'Appointment updated successfully'
    }), 200


@appointment_bp.route('/<int:appointment_id>', methods=['DELETE'])
@jwt_required()
@require_role(*BOOKING_ROLES)
def cancel_appointment(appointment_id):
    """
    Cancel an appointment (appointments are never deleted)
    Body (optional): { reason }
    """
    data = request.get_json(silent=True) or {}
    appointment = _engine().cancel(appointment_id, data.get('reason', ''))

    log_audit('appointment', 'cancel', user_id=current_staff_id(), entity_id=appointment.id,
              details={'reason': appointment.cancellation_reason})
    notifications.notify(notifications.appointment_cancelled, appointment)

    return jsonify({
        'success': True,
        'data': appointment.to_dict(),
        'message': 'Appointment cancelled successfully'
    }), 200


@appointment_bp.route('/<int:appointment_id>/complete', methods=['POST'])
@jwt_required()
@require_role('doctor', 'admin')
def complete_appointment(appointment_id):
    """
    Mark an appointment completed
    Body: { diagnosis?, treatment?, prescription? }
    Access: doctor, admin
    """
    data = request.get_json(silent=True) or {}
    appointment = _engine().complete(
        appointment_id,
        diagnosis=data.get('diagnosis', ''),
        treatment=data.get('treatment', ''),
        prescription=data.get('prescription', ''),
    )

    log_audit('appointment', 'complete', user_id=current_staff_id(), entity_id=appointment.id)

    return jsonify({
        'success': True,
        'data': appointment.to_dict(),
        'message': 'Appointment completed'
    }), 200


@appointment_bp.route('/slots/available', methods=['GET'])
@jwt_required()
def available_slots():
    """
    Free slots for a doctor on a date
    Query params: doctor_id, date (YYYY-MM-DD)
    """
    doctor_id = request.args.get('doctor_id', type=int)
    slot_date = request.args.get('date', type=str)
    if not doctor_id or not slot_date:
        raise InvalidInput('Query parameters "doctor_id" and "date" are required')

    day = as_date(slot_date)
    slots = _engine().compute_available_slots(doctor_id, day)

    return jsonify({
        'success': True,
        'data': {
            'doctor_id': doctor_id,
            'date': day.isoformat(),
            'available_slots': slots
        }
    }), 200


@appointment_bp.route('/schedule/daily', methods=['GET'])
@jwt_required()
def daily_schedule():
    """
    All live appointments for a date (default: today), ordered by time
    Query params: date (YYYY-MM-DD)
    """
    schedule_date = request.args.get('date', type=str)
    day = as_date(schedule_date) if schedule_date else date.today()
    appointments = _engine().daily_schedule(day)

    return jsonify({
        'success': True,
        'data': {
            'date': day.isoformat(),
            'appointments': [a.to_dict() for a in appointments],
            'count': len(appointments)
        }
    }), 200
