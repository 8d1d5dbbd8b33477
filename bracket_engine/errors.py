"""Custom exception classes for the bracket engine and its services."""


class BracketError(Exception):
    """Base error class; carries the HTTP status the JSON layer responds with."""

    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class TopologyError(BracketError):
    """Raised for a round/match position that does not exist in the bracket."""

    def __init__(self, message="Invalid bracket position."):
        super().__init__(message, 500)


class ValidationError(BracketError):
    """Raised when input fails validation."""

    def __init__(self, message="Validation failed."):
        super().__init__(message, 400)


class PreconditionViolation(BracketError):
    """Raised when a mutation is attempted on a completed match or a locked bracket."""

    def __init__(self, message="Operation not allowed in the current state."):
        super().__init__(message, 400)


class NotFoundError(BracketError):
    def __init__(self, message="Resource not found."):
        super().__init__(message, 404)


class DuplicateResourceError(BracketError):
    def __init__(self, message="Resource already exists."):
        super().__init__(message, 409)


class PermissionDenied(BracketError):
    def __init__(self, message="Not authorized."):
        super().__init__(message, 403)


class StorageUnavailable(BracketError):
    """Raised when the database cannot complete a unit of work; nothing was written."""

    def __init__(self, message="Storage is temporarily unavailable."):
        super().__init__(message, 503)
