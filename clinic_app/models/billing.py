from datetime import datetime
from decimal import Decimal

from clinic_app.extensions import db
from .base import TimestampMixin

PAYMENT_PENDING = 'Pending'
PAYMENT_PARTIAL = 'Partially Paid'
PAYMENT_PAID = 'Paid'
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PARTIAL, PAYMENT_PAID)
SERVICE_TYPES = ('Consultation', 'Lab Test', 'Medication', 'Procedure', 'Room Charge')
PAYMENT_METHODS = ('Cash', 'Card', 'Insurance', 'Bank Transfer', 'Online')

Money = db.Numeric(12, 2, asdecimal=True)


def _money(value):
    return str(value if value is not None else Decimal('0.00'))


class Bill(db.Model, TimestampMixin):
    __tablename__ = 'bills'

    id = db.Column(db.Integer, primary_key=True)
    bill_number = db.Column(db.String(20), unique=True, nullable=False, index=True)  # e.g., INV0001
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id'), nullable=False, index=True)

    subtotal = db.Column(Money, nullable=False, default=Decimal('0.00'))
    discount_amount = db.Column(Money, nullable=False, default=Decimal('0.00'))
    tax_amount = db.Column(Money, nullable=False, default=Decimal('0.00'))
    total_amount = db.Column(Money, nullable=False, default=Decimal('0.00'))

    # Cached derivation of the payment ledger, see BillingEngine.record_payment
    payment_status = db.Column(db.String(20), nullable=False, default=PAYMENT_PENDING, index=True)
    notes = db.Column(db.Text)
    created_by = db.Column(db.Integer, db.ForeignKey('staff.id'), nullable=True)

    items = db.relationship('BillItem', backref='bill', lazy=True,
                            order_by='BillItem.id', cascade='all, delete-orphan')
    payments = db.relationship('Payment', backref='bill', lazy=True,
                               order_by='Payment.id')

    def to_dict(self, include_items=True, include_payments=False):
        patient = self.patient
        data = {
            'id': self.id,
            'bill_number': self.bill_number,
            'patient_id': self.patient_id,
            'patient_name': patient.full_name if patient else None,
            'subtotal': _money(self.subtotal),
            'discount_amount': _money(self.discount_amount),
            'tax_amount': _money(self.tax_amount),
            'total_amount': _money(self.total_amount),
            'payment_status': self.payment_status,
            'notes': self.notes,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_items:
            data['items'] = [item.to_dict() for item in self.items]
        if include_payments:
            data['payments'] = [payment.to_dict() for payment in self.payments]
        return data

    def __repr__(self):
        return f"<Bill {self.bill_number} - {self.payment_status}>"


class BillItem(db.Model):
    __tablename__ = 'bill_items'

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey('bills.id'), nullable=False, index=True)
    service_type = db.Column(db.String(50), nullable=False)
    description = db.Column(db.String(255))
    unit_price = db.Column(Money, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    total_price = db.Column(Money, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'bill_id': self.bill_id,
            'service_type': self.service_type,
            'description': self.description,
            'unit_price': _money(self.unit_price),
            'quantity': self.quantity,
            'total_price': _money(self.total_price),
        }


class Payment(db.Model):
    """Append-only payment ledger entry"""
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey('bills.id'), nullable=False, index=True)
    amount = db.Column(Money, nullable=False)
    payment_method = db.Column(db.String(30), nullable=False)
    transaction_id = db.Column(db.String(120))
    notes = db.Column(db.Text)
    processed_by = db.Column(db.Integer, db.ForeignKey('staff.id'), nullable=True)
    payment_date = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'bill_id': self.bill_id,
            'amount': _money(self.amount),
            'payment_method': self.payment_method,
            'transaction_id': self.transaction_id,
            'notes': self.notes,
            'processed_by': self.processed_by,
            'payment_date': self.payment_date.isoformat() if self.payment_date else None,
        }
