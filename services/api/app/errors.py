class ServiceError(Exception):
    """Base of the controller's error taxonomy.

    Carries an HTTP-like status code so the transport layer can map it
    without knowing the concrete kind.
    """

    status_code = 500
    kind = "internal"

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotInitialized(ServiceError):
    status_code = 400
    kind = "not_initialized"

    def __init__(self, message: str = "Agent is not initialized."):
        super().__init__(message)


class Conflict(ServiceError):
    status_code = 409
    kind = "conflict"


class NotFound(ServiceError):
    status_code = 404
    kind = "not_found"


class ConfigurationError(ServiceError):
    status_code = 500
    kind = "configuration"


class UpstreamFailure(ServiceError):
    status_code = 502
    kind = "upstream"

    @classmethod
    def wrap(cls, operation: str, exc: Exception, details: dict | None = None):
        return cls(f"{operation} failed: {exc}", details)


class ValidationError(ServiceError):
    status_code = 400
    kind = "validation"
