from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import (
    create_access_token,
    create_refresh_token,
    jwt_required,
    get_jwt_identity,
    get_jwt,
)
from clinic_app.models import Staff
from clinic_app.extensions import db
from datetime import datetime

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _expires_in():
    return int(current_app.config['JWT_ACCESS_TOKEN_EXPIRES'].total_seconds())


@auth_bp.route('/login', methods=['POST'])
def login():
    """Login endpoint - authenticates staff and returns JWT tokens"""
    data = request.get_json(silent=True)

    if not data:
        return jsonify({
            'success': False,
            'error': 'Request body must be JSON'
        }), 400

    username = data.get('username')
    password = data.get('password')

    if not username or not password:
        return jsonify({
            'success': False,
            'error': 'Username and password required'
        }), 400

    staff = Staff.query.filter_by(username=username).first()

    if not staff or not staff.check_password(password):
        return jsonify({
            'success': False,
            'error': 'Invalid username or password'
        }), 401

    if not staff.is_active:
        return jsonify({
            'success': False,
            'error': 'Account is deactivated'
        }), 403

    # Update login tracking
    staff.last_login = datetime.utcnow()
    staff.login_count = (staff.login_count or 0) + 1
    db.session.commit()

    # Identity is the staff id (a string for the "sub" claim); role rides along as a claim
    identity = str(staff.id)
    additional_claims = {
        "username": staff.username,
        "role": staff.role,
    }

    access_token = create_access_token(
        identity=identity,
        additional_claims=additional_claims,
        fresh=True,
    )
    refresh_token = create_refresh_token(
        identity=identity,
        additional_claims=additional_claims,
    )

    return jsonify({
        'success': True,
        'data': staff.to_dict(),
        'access_token': access_token,
        'refresh_token': refresh_token,
        'token_type': 'bearer',
        'expires_in': _expires_in()
    }), 200


@auth_bp.route('/logout', methods=['POST'])
@jwt_required()
def logout():
    """Logout endpoint - stateless JWT, the client discards its tokens"""
    return jsonify({
        'success': True,
        'message': 'Logged out successfully (delete tokens on client)'
    }), 200


@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def get_current_user():
    """Get current logged-in staff member using JWT"""
    staff = db.session.get(Staff, int(get_jwt_identity()))

    if not staff:
        return jsonify({'success': False, 'error': 'User not found'}), 404

    data = staff.to_dict(include_schedule=staff.is_doctor())
    data['login_count'] = staff.login_count
    return jsonify({
        'success': True,
        'data': data
    }), 200


@auth_bp.route('/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh():
    """Refresh access token using refresh token"""
    identity = get_jwt_identity()
    staff = db.session.get(Staff, int(identity))
    if not staff or not staff.is_active:
        return jsonify({
            'success': False,
            'error': 'Could not refresh token'
        }), 401

    claims = get_jwt()
    new_access_token = create_access_token(
        identity=identity,
        additional_claims={
            "username": claims.get("username"),
            "role": staff.role,
        },
        fresh=False
    )
    return jsonify({
        'success': True,
        'access_token': new_access_token,
        'token_type': 'bearer',
        'expires_in': _expires_in()
    }), 200
