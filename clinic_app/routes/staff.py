from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from clinic_app.extensions import db
from clinic_app.errors import InvalidInput
from clinic_app.services.scheduling import SchedulingEngine
from clinic_app.services.staff import StaffService
from clinic_app.utils.audit import log_audit
from clinic_app.utils.decorators import require_role, current_staff_id
from clinic_app.utils.fields import as_date
from clinic_app.utils.pagination import get_pagination, pagination_meta
from datetime import date

staff_bp = Blueprint("staff", __name__, url_prefix="/api/staff")


def _service():
    return StaffService(db.session)


def _json_body():
    data = request.get_json(silent=True)
    if not data:
        raise InvalidInput("Request body must be JSON")
    return data


@staff_bp.route("", methods=["GET"])
@jwt_required()
@require_role("admin")
def list_staff():
    """
    List staff members
    Query params: search, role, page, limit
    """
    page, limit = get_pagination()
    result = _service().list_staff(
        search=request.args.get("search", "", type=str).strip(),
        role=request.args.get("role", type=str),
        page=page,
        limit=limit,
    )
    return jsonify({
        "success": True,
        "data": [s.to_dict() for s in result["staff"]],
        "pagination": pagination_meta(result),
    }), 200


@staff_bp.route("/doctors", methods=["GET"])
@jwt_required()
def list_doctors():
    """Active doctors with their weekly schedules, for booking screens."""
    doctors = _service().list_doctors()
    return jsonify({
        "success": True,
        "data": [d.to_dict(include_schedule=True) for d in doctors],
    }), 200


@staff_bp.route("/<int:staff_id>", methods=["GET"])
@jwt_required()
@require_role("admin")
def get_staff(staff_id):
    staff = _service().get_staff(staff_id)
    data = staff.to_dict(include_schedule=staff.is_doctor())
    if staff.is_doctor():
        upcoming = SchedulingEngine(db.session).upcoming_for_doctor(staff_id)
        data["upcoming_appointments"] = [a.to_dict() for a in upcoming]
    return jsonify({"success": True, "data": data}), 200


@staff_bp.route("", methods=["POST"])
@jwt_required()
@require_role("admin")
def create_staff():
    """
    Create a staff account
    Body: { username, email, password, first_name, last_name, role, phone?,
            specialization?, license_number?, qualification?, schedule? }
    """
    data = _json_body()
    staff = _service().create_staff(data)

    log_audit("staff", "create", user_id=current_staff_id(), entity_id=staff.id,
              details={"username": staff.username, "role": staff.role})

    return jsonify({
        "success": True,
        "data": staff.to_dict(include_schedule=True),
        "message": "Staff member created successfully",
    }), 201


@staff_bp.route("/<int:staff_id>", methods=["PUT"])
@jwt_required()
@require_role("admin")
def update_staff(staff_id):
    """Update a staff account, including a doctor's weekly schedule."""
    data = _json_body()
    staff = _service().update_staff(staff_id, data)

    log_audit("staff", "update", user_id=current_staff_id(), entity_id=staff.id,
              details={"fields": sorted(k for k in data if k != "password")})

    return jsonify({
        "success": True,
        "data": staff.to_dict(include_schedule=True),
        "message": "Staff member updated successfully",
    }), 200


@staff_bp.route("/<int:doctor_id>/schedule", methods=["GET"])
@jwt_required()
def doctor_schedule(doctor_id):
    """
    A doctor's appointments for a date with that weekday's working hours
    and the free slots.
    Query params: date (YYYY-MM-DD, default today)
    """
    schedule_date = request.args.get("date", type=str)
    day = as_date(schedule_date) if schedule_date else date.today()

    engine = SchedulingEngine(db.session, slot_minutes=current_app.config["SLOT_DURATION_MINUTES"])
    result = engine.doctor_day(doctor_id, day)

    return jsonify({
        "success": True,
        "data": {
            "doctor_id": doctor_id,
            "date": day.isoformat(),
            "working_hours": result["working_hours"],
            "appointments": [a.to_dict() for a in result["appointments"]],
            "available_slots": engine.compute_available_slots(doctor_id, day),
        },
    }), 200
