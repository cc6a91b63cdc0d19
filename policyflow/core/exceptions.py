"""
Exception hierarchy for the workflow engine.
The API layer maps each class to an HTTP status.
"""


class PolicyflowError(Exception):
    """Base exception for workflow errors."""

    status_code = 500
    title = "Internal Server Error"

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class NotFoundError(PolicyflowError):
    """Raised when a requested entity does not exist."""
    status_code = 404
    title = "Not Found"


class ValidationError(PolicyflowError):
    """Raised when input validation fails."""
    status_code = 400
    title = "Bad Request"


class ConflictError(PolicyflowError):
    """Raised when an operation collides with existing data."""
    status_code = 409
    title = "Conflict"


class AlreadyExistsError(ConflictError):
    """Raised by repositories when a natural key is already taken."""
    pass


class InvalidStateError(PolicyflowError):
    """Raised when an entity is not in a state that allows the operation."""
    status_code = 409
    title = "Conflict"


class OfferExpiredError(InvalidStateError):
    """Raised when accepting an offer past its expiry."""
    pass


class UnauthorizedError(PolicyflowError):
    status_code = 401
    title = "Unauthorized"


class ForbiddenError(PolicyflowError):
    status_code = 403
    title = "Forbidden"


class StorageError(PolicyflowError):
    """Raised when a database operation fails."""
    status_code = 503
    title = "Service Unavailable"
    retryable = False


class StorageTimeoutError(StorageError):
    """Raised when a database operation exceeds its deadline."""
    status_code = 504
    title = "Gateway Timeout"
    retryable = True
