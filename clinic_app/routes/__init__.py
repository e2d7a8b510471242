from .auth import auth_bp
from .patient import patient_bp
from .staff import staff_bp
from .appointment import appointment_bp
from .billing import billing_bp
from .health import health_bp

__all__ = ['auth_bp', 'patient_bp', 'staff_bp', 'appointment_bp', 'billing_bp', 'health_bp']
