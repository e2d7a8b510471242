from functools import wraps
from flask import jsonify
from flask_jwt_extended import get_jwt_identity

from clinic_app.extensions import db
from clinic_app.models import Staff


def current_staff_id():
    """Staff id carried in the JWT identity."""
    return int(get_jwt_identity())


def require_role(*roles):
    """
    Decorator to require specific roles
    Usage: @require_role('doctor', 'receptionist')
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            """
            Require that the current JWT-authenticated staff member has one of the given roles.
            Must be used together with @jwt_required() on the route.
            """
            try:
                user = db.session.get(Staff, current_staff_id())
            except (TypeError, ValueError):
                return jsonify({
                    'success': False,
                    'error': 'Authentication required'
                }), 401

            if not user or not user.is_active:
                return jsonify({
                    'success': False,
                    'error': 'Authentication required'
                }), 401

            if not user.has_any_role(*roles):
                return jsonify({
                    'success': False,
                    'error': f'Permission denied. Required roles: {", ".join(roles)}'
                }), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator
