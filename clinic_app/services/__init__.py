from .scheduling import SchedulingEngine
from .billing import BillingEngine, PaymentResult
from .patients import PatientService
from .staff import StaffService

__all__ = [
    "SchedulingEngine",
    "BillingEngine",
    "PaymentResult",
    "PatientService",
    "StaffService",
]
