"""
Domain errors raised by the scheduling, billing, patient and staff services.
Each carries the HTTP status the API layer responds with.
"""


class ClinicError(Exception):
    """Base class for business-rule and persistence failures"""
    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    def to_dict(self):
        return {'success': False, 'error': self.message}


class NotFound(ClinicError):
    """Resource not found"""
    status_code = 404


class InvalidInput(ClinicError):
    """Invalid input"""
    status_code = 400


class Conflict(ClinicError):
    """Conflicting state"""
    status_code = 409


class AlreadyCancelled(Conflict):
    """Appointment is already cancelled"""


class AlreadyPaid(Conflict):
    """Bill is already paid"""


class TransactionFailure(ClinicError):
    """Database transaction failed"""
    status_code = 500
