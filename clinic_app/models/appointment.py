from clinic_app.extensions import db
from .base import TimestampMixin

STATUS_SCHEDULED = 'Scheduled'
STATUS_COMPLETED = 'Completed'
STATUS_CANCELLED = 'Cancelled'
APPOINTMENT_STATUSES = (STATUS_SCHEDULED, STATUS_COMPLETED, STATUS_CANCELLED)
APPOINTMENT_TYPES = ('Consultation', 'Follow-up', 'Emergency', 'Routine Check')


class Appointment(db.Model, TimestampMixin):
    __tablename__ = 'appointments'
    __table_args__ = (
        # At most one live appointment per doctor slot; cancelled rows free the slot
        db.Index(
            'uq_appointments_doctor_slot',
            'doctor_id', 'appointment_date', 'appointment_time',
            unique=True,
            postgresql_where=db.text("status <> 'Cancelled'"),
            sqlite_where=db.text("status <> 'Cancelled'"),
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    appointment_number = db.Column(db.String(20), unique=True, nullable=False, index=True)  # e.g., APT0001
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id'), nullable=False, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('staff.id'), nullable=False, index=True)

    appointment_date = db.Column(db.Date, nullable=False, index=True)
    appointment_time = db.Column(db.String(8), nullable=False)  # "HH:MM:SS"

    type = db.Column(db.String(30), default='Consultation')
    status = db.Column(db.String(20), default=STATUS_SCHEDULED, nullable=False, index=True)

    reason = db.Column(db.Text)
    diagnosis = db.Column(db.Text)
    treatment = db.Column(db.Text)
    prescription = db.Column(db.Text)
    notes = db.Column(db.Text)
    cancellation_reason = db.Column(db.Text)

    created_by = db.Column(db.Integer, db.ForeignKey('staff.id'), nullable=True)

    doctor = db.relationship('Staff', foreign_keys=[doctor_id], backref=db.backref('appointments', lazy='dynamic'))

    def to_dict(self):
        patient = self.patient
        doctor = self.doctor
        return {
            'id': self.id,
            'appointment_number': self.appointment_number,
            'patient_id': self.patient_id,
            'patient_name': patient.full_name if patient else None,
            'patient_phone': patient.phone if patient else None,
            'doctor_id': self.doctor_id,
            'doctor_name': doctor.full_name if doctor else None,
            'doctor_specialization': doctor.specialization if doctor else None,
            'appointment_date': self.appointment_date.isoformat() if self.appointment_date else None,
            'appointment_time': self.appointment_time,
            'type': self.type,
            'status': self.status,
            'reason': self.reason,
            'diagnosis': self.diagnosis,
            'treatment': self.treatment,
            'prescription': self.prescription,
            'notes': self.notes,
            'cancellation_reason': self.cancellation_reason,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Appointment {self.appointment_number} - doctor {self.doctor_id} on {self.appointment_date} {self.appointment_time}>"
