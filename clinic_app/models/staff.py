from clinic_app.extensions import db, bcrypt
from clinic_app.utils.schedule import load_schedule
from .base import TimestampMixin

ROLES = ('admin', 'doctor', 'nurse', 'receptionist', 'accountant')


class Staff(db.Model, TimestampMixin):
    __tablename__ = 'staff'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    # Personal Information
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20))

    # One of ROLES
    role = db.Column(db.String(20), nullable=False, index=True)

    # Professional details (doctors, nurses)
    specialization = db.Column(db.String(100))
    license_number = db.Column(db.String(50))
    qualification = db.Column(db.String(255))

    # Weekly working hours, JSON keyed by weekday name
    schedule = db.Column(db.Text)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login = db.Column(db.DateTime, nullable=True)
    login_count = db.Column(db.Integer, default=0)

    def set_password(self, password):
        """Hash and set password"""
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        """Check if provided password matches hash"""
        return bcrypt.check_password_hash(self.password_hash, password)

    def has_any_role(self, *role_names):
        return self.role in role_names

    def is_doctor(self):
        return self.role == 'doctor'

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def working_hours(self):
        """Parsed schedule; empty when unset or malformed."""
        return load_schedule(self.schedule)

    def to_dict(self, include_schedule=False):
        data = {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'phone': self.phone,
            'role': self.role,
            'specialization': self.specialization,
            'license_number': self.license_number,
            'qualification': self.qualification,
            'is_active': self.is_active,
            'last_login': self.last_login.isoformat() if self.last_login else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_schedule:
            data['schedule'] = {day: entry.to_dict() for day, entry in self.working_hours.items()}
        return data

    def __repr__(self):
        return f"<Staff {self.username} ({self.first_name} {self.last_name}) - {self.role}>"
