from .staff import Staff
from .patient import Patient
from .appointment import Appointment
from .billing import Bill, BillItem, Payment
from .audit_log import AuditLog

__all__ = ["Staff", "Patient", "Appointment", "Bill", "BillItem", "Payment", "AuditLog"]
