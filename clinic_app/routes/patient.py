from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from clinic_app.extensions import db
from clinic_app.errors import InvalidInput
from clinic_app.services.patients import PatientService
from clinic_app.services.scheduling import SchedulingEngine
from clinic_app.utils.audit import log_audit
from clinic_app.utils.decorators import require_role, current_staff_id
from clinic_app.utils.pagination import get_pagination, pagination_meta

patient_bp = Blueprint('patient', __name__, url_prefix='/api/patients')

RECORD_ROLES = ('admin', 'receptionist', 'doctor', 'nurse')


def _service():
    return PatientService(db.session)


@patient_bp.route('', methods=['GET'])
@jwt_required()
def list_patients():
    """
    List patients with pagination and search
    Query params: page, limit, search
    """
    # Step 1: Get query parameters
    page, limit = get_pagination()
    search = request.args.get('search', '', type=str).strip()

    # Step 2: Query (soft-deleted patients are excluded)
    result = _service().list_patients(search=search, page=page, limit=limit)

    return jsonify({
        'success': True,
        'data': [p.to_dict() for p in result['patients']],
        'pagination': pagination_meta(result)
    }), 200


@patient_bp.route('/<int:patient_id>', methods=['GET'])
@jwt_required()
def get_patient(patient_id):
    patient = _service().get_patient(patient_id)
    return jsonify({
        'success': True,
        'data': patient.to_dict()
    }), 200


@patient_bp.route('/<int:patient_id>/history', methods=['GET'])
@jwt_required()
def get_patient_history(patient_id):
    """
    Medical history for a patient: completed appointments with their
    clinical notes, plus upcoming appointments.
    """
    service = _service()
    patient = service.get_patient(patient_id)
    completed = service.medical_history(patient_id)
    upcoming = SchedulingEngine(db.session).upcoming_for_patient(patient_id)

    return jsonify({
        'success': True,
        'data': {
            'patient': patient.to_dict(),
            'history': [a.to_dict() for a in completed],
            'upcoming': [a.to_dict() for a in upcoming],
        }
    }), 200


@patient_bp.route('', methods=['POST'])
@jwt_required()
@require_role(*RECORD_ROLES)
def create_patient():
    """
    Create new patient
    Access: admin, receptionist, doctor, nurse
    """
    data = request.get_json(silent=True)
    if not data:
        raise InvalidInput('Request body must be JSON')

    user_id = current_staff_id()
    patient = _service().create_patient(data, created_by=user_id)

    log_audit('patient', 'create', user_id=user_id, entity_id=patient.id,
              details={'name': patient.full_name, 'patient_number': patient.patient_number})

    return jsonify({
        'success': True,
        'data': patient.to_dict(),
        'message': 'Patient created successfully'
    }), 201


@patient_bp.route('/<int:patient_id>', methods=['PUT'])
@jwt_required()
@require_role(*RECORD_ROLES)
def update_patient(patient_id):
    data = request.get_json(silent=True)
    if not data:
        raise InvalidInput('Request body must be JSON')

    patient = _service().update_patient(patient_id, data)
    log_audit('patient', 'update', user_id=current_staff_id(), entity_id=patient.id,
              details={'fields': sorted(data)})

    return jsonify({
        'success': True,
        'data': patient.to_dict(),
        'message': 'Patient updated successfully'
    }), 200


@patient_bp.route('/<int:patient_id>', methods=['DELETE'])
@jwt_required()
@require_role('admin')
def delete_patient(patient_id):
    """
    Soft-delete patient (medical data is never hard-deleted).
    Access: admin
    """
    patient = _service().delete_patient(patient_id)
    log_audit('patient', 'delete', user_id=current_staff_id(), entity_id=patient_id,
              details={'name': patient.full_name})

    return jsonify({
        'success': True,
        'message': f'Patient {patient.patient_number} deleted successfully'
    }), 200
