"""
Application error hierarchy.

Services raise these; ``app.register_error_handlers`` turns every
``AppError`` into a ``{success: false, message, data: null}`` JSON envelope
with the error's HTTP status code.
"""


class AppError(Exception):
    """Base class for errors that map onto an HTTP status code."""
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'success': False, 'message': self.message, 'data': None}


class ValidationError(AppError):
    """Missing/invalid fields or a referenced member that breaks a rule."""
    status_code = 400


class ConflictError(AppError):
    """Duplicate full name or a second lineage head in one branch."""
    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class AuthorizationError(AppError):
    status_code = 403


class TransactionError(AppError):
    """The store aborted a multi-row write; the session was rolled back."""
    status_code = 500


class EmailDeliveryError(AppError):
    status_code = 502
