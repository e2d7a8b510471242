import json
from datetime import date

from clinic_app.extensions import db
from .base import TimestampMixin


class Patient(db.Model, TimestampMixin):
    __tablename__ = 'patients'

    id = db.Column(db.Integer, primary_key=True)
    patient_number = db.Column(db.String(20), unique=True, nullable=False, index=True)  # e.g., P0001

    # Personal
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    date_of_birth = db.Column(db.Date)
    gender = db.Column(db.String(20))
    phone = db.Column(db.String(20), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=True)
    address = db.Column(db.Text)

    emergency_contact = db.Column(db.String(100))
    emergency_phone = db.Column(db.String(20))

    # Medical
    medical_history = db.Column(db.Text)
    allergies = db.Column(db.Text)
    blood_group = db.Column(db.String(5))
    insurance_info = db.Column(db.Text)  # JSON

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey('staff.id'), nullable=True)

    # Soft delete (no hard deletion of medical data)
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)

    appointments = db.relationship('Appointment', backref='patient', lazy='dynamic')
    bills = db.relationship('Bill', backref='patient', lazy='dynamic')

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    @property
    def age(self):
        if not self.date_of_birth:
            return None
        today = date.today()
        born = self.date_of_birth
        return today.year - born.year - ((today.month, today.day) < (born.month, born.day))

    def to_dict(self):
        return {
            'id': self.id,
            'patient_number': self.patient_number,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'date_of_birth': self.date_of_birth.isoformat() if self.date_of_birth else None,
            'age': self.age,
            'gender': self.gender,
            'phone': self.phone,
            'email': self.email,
            'address': self.address,
            'emergency_contact': self.emergency_contact,
            'emergency_phone': self.emergency_phone,
            'medical_history': self.medical_history,
            'allergies': self.allergies,
            'blood_group': self.blood_group,
            'insurance_info': json.loads(self.insurance_info) if self.insurance_info else None,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Patient {self.first_name} {self.last_name} ({self.patient_number})>"
