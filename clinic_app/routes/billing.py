from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from clinic_app.extensions import db
from clinic_app.errors import InvalidInput
from clinic_app.services import notifications
from clinic_app.services.billing import BillingEngine
from clinic_app.utils.audit import log_audit
from clinic_app.utils.decorators import require_role, current_staff_id
from clinic_app.utils.pagination import get_pagination, pagination_meta

billing_bp = Blueprint('billing', __name__, url_prefix='/api/billing')

BILLING_ROLES = ('admin', 'accountant', 'receptionist')


def _engine():
    return BillingEngine(db.session, max_attempts=current_app.config['BOOKING_MAX_ATTEMPTS'])


def _json_body():
    data = request.get_json(silent=True)
    if not data:
        raise InvalidInput('Request body must be JSON')
    return data


@billing_bp.route('', methods=['GET'])
@jwt_required()
@require_role(*BILLING_ROLES)
def list_bills():
    """
    List bills with pagination
    Query params: status, patient_id, page, limit
    """
    page, limit = get_pagination()
    result = _engine().list_bills(
        status=request.args.get('status', type=str),
        patient_id=request.args.get('patient_id', type=int),
        page=page,
        limit=limit,
    )
    return jsonify({
        'success': True,
        'data': [b.to_dict(include_items=False) for b in result['bills']],
        'pagination': pagination_meta(result)
    }), 200


@billing_bp.route('/<int:bill_id>', methods=['GET'])
@jwt_required()
@require_role(*BILLING_ROLES)
def get_bill(bill_id):
    engine = _engine()
    bill = engine.get_bill(bill_id)
    data = bill.to_dict(include_items=True)
    data['payments'] = [p.to_dict() for p in engine.get_payments(bill_id)]
    data['total_paid'] = str(engine.get_total_paid(bill_id))
    data['remaining_amount'] = str(engine.get_remaining_amount(bill_id))
    return jsonify({
        'success': True,
        'data': data
    }), 200


@billing_bp.route('', methods=['POST'])
@jwt_required()
@require_role(*BILLING_ROLES)
def create_bill():
    """
    Issue a bill
    Body: { patient_id, items: [{service_type, description, unit_price, quantity}],
            discount?, tax? (percent), notes? }
    """
    data = _json_body()
    user_id = current_staff_id()

    bill = _engine().create_bill(
        data.get('patient_id'),
        data.get('items') or [],
        discount=data.get('discount', 0),
        tax_percent=data.get('tax', 0),
        notes=data.get('notes'),
        created_by=user_id,
    )

    log_audit('bill', 'create', user_id=user_id, entity_id=bill.id,
              details={'bill_number': bill.bill_number, 'total_amount': bill.total_amount})
    notifications.notify(notifications.invoice_generated, bill)

    return jsonify({
        'success': True,
        'data': bill.to_dict(),
        'message': 'Bill created successfully'
    }), 201


@billing_bp.route('/<int:bill_id>/items', methods=['POST'])
@jwt_required()
@require_role(*BILLING_ROLES)
def add_bill_item(bill_id):
    """
    Add a line item; discount and tax amounts stay as issued
    Body: { service_type, description?, unit_price, quantity? }
    """
    data = _json_body()
    engine = _engine()
    item = engine.add_item(
        bill_id,
        data.get('service_type'),
        data.get('description'),
        data.get('unit_price'),
        data.get('quantity', 1),
    )

    log_audit('bill', 'update', user_id=current_staff_id(), entity_id=bill_id,
              details={'added_item': item.id})

    return jsonify({
        'success': True,
        'data': engine.get_bill(bill_id).to_dict(),
        'message': 'Item added successfully'
    }), 201


@billing_bp.route('/<int:bill_id>/items/<int:item_id>', methods=['DELETE'])
@jwt_required()
@require_role(*BILLING_ROLES)
def remove_bill_item(bill_id, item_id):
    bill = _engine().remove_item(bill_id, item_id)

    log_audit('bill', 'update', user_id=current_staff_id(), entity_id=bill_id,
              details={'removed_item': item_id})

    return jsonify({
        'success': True,
        'data': bill.to_dict(),
        'message': 'Item removed successfully'
    }), 200


@billing_bp.route('/<int:bill_id>/payment', methods=['POST'])
@jwt_required()
@require_role(*BILLING_ROLES)
def record_payment(bill_id):
    """
    Record a payment against a bill
    Body: { amount, payment_method, transaction_id?, notes? }
    """
    data = _json_body()
    if data.get('amount') in (None, '') or not data.get('payment_method'):
        raise InvalidInput('Fields "amount" and "payment_method" are required')

    user_id = current_staff_id()
    engine = _engine()
    result = engine.record_payment(
        bill_id,
        data['amount'],
        data['payment_method'],
        transaction_id=data.get('transaction_id'),
        notes=data.get('notes'),
        processed_by=user_id,
    )
    bill = engine.get_bill(bill_id)

    log_audit('bill', 'payment', user_id=user_id, entity_id=bill_id,
              details={'payment_id': result.payment_id, 'amount': data['amount']})
    notifications.notify(notifications.payment_received, bill, data['amount'], result)

    return jsonify({
        'success': True,
        'data': result.to_dict(),
        'message': 'Payment recorded successfully'
    }), 201


@billing_bp.route('/payments/history', methods=['GET'])
@jwt_required()
@require_role(*BILLING_ROLES)
def payment_history():
    """
    Payment ledger, newest first
    Query params: patient_id, page, limit
    """
    page, limit = get_pagination()
    result = _engine().payment_history(
        patient_id=request.args.get('patient_id', type=int),
        page=page,
        limit=limit,
    )
    return jsonify({
        'success': True,
        'data': [p.to_dict() for p in result['payments']],
        'pagination': pagination_meta(result)
    }), 200


@billing_bp.route('/stats/overview', methods=['GET'])
@jwt_required()
@require_role('admin', 'accountant')
def billing_stats():
    """Query params: days (default 30)"""
    days = request.args.get('days', 30, type=int)
    if days < 1:
        raise InvalidInput('"days" must be a positive integer')
    return jsonify({
        'success': True,
        'data': _engine().billing_stats(days=days)
    }), 200


@billing_bp.route('/outstanding/<int:patient_id>', methods=['GET'])
@jwt_required()
@require_role(*BILLING_ROLES)
def outstanding_bills(patient_id):
    engine = _engine()
    bills = engine.get_outstanding(patient_id)
    return jsonify({
        'success': True,
        'data': [
            dict(b.to_dict(include_items=False), remaining_amount=str(engine.get_remaining_amount(b.id)))
            for b in bills
        ]
    }), 200
