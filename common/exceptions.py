"""
Error taxonomy for the billing engine.

Every error raised by the engine derives from BillingError and carries the
HTTP status code the web layer should answer with.
"""


class BillingError(Exception):
    """Base class for billing engine errors."""
    status_code = 500
    kind = 'Billing error'
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        payload = {'error': self.kind, 'message': self.message}
        if self.retryable:
            payload['retryable'] = True
        return payload


class ValidationError(BillingError):
    """Bad input rejected before any write (month format, amount, status...)."""
    status_code = 400
    kind = 'Validation error'


class NotFoundError(BillingError):
    """No row exists for the requested key."""
    status_code = 404
    kind = 'Not found'


class ConflictError(BillingError):
    """A uniqueness constraint rejected a write."""
    status_code = 409
    kind = 'Conflict'


class DependencyError(BillingError):
    """The backing store is unavailable. Safe to retry."""
    status_code = 503
    kind = 'Storage unavailable'
    retryable = True


class FeeResolutionError(BillingError):
    """The fee percentage for a scope could not be determined."""
    status_code = 500
    kind = 'Fee resolution failed'
