"""Custom exceptions for the POS cart engine."""

class CartError(Exception):
    """Base exception for all cart errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class ValidationError(CartError):
    """Raised when request input cannot be turned into cart data."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class InvalidDiscountError(ValidationError):
    """Raised for a discount whose kind or value the engine cannot price."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)

class NotFoundError(CartError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class HoldNotFoundError(NotFoundError):
    """Raised when a parked cart does not exist."""
    def __init__(self, hold_id):
        super().__init__(f"Held cart '{hold_id}' not found", {'hold_id': hold_id})
        self.hold_id = hold_id

class StorageUnavailableError(CartError):
    """Raised by a snapshot backend when its store cannot be reached."""
    def __init__(self, message="Cart storage unavailable"):
        super().__init__(message, 503)

class SnapshotError(CartError):
    """Raised when a persisted snapshot cannot be decoded into a cart."""
    def __init__(self, message="Corrupt cart snapshot"):
        super().__init__(message, 500)
