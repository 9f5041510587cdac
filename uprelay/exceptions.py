class RelayError(Exception):
    """Base class for errors that cross the HTTP boundary as ``{"error": message}``."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, message=None, status_code=None):
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class AuthFailure(RelayError):
    """Missing, malformed or invalid credential or signature.

    Messages are generic on purpose; callers never learn which check failed.
    """

    status_code = 401
    message = "Unauthorized"


class NotFoundError(RelayError):
    status_code = 404
    message = "File not found"


class ValidationFailure(RelayError):
    status_code = 400
    message = "Invalid request"


class StorageFailure(RelayError):
    status_code = 500
    message = "Storage backend error"


class ConfigurationError(RelayError):
    message = "Invalid configuration"

