"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Missing, invalid or expired bearer credentials."""

    headers = {"WWW-Authenticate": "Bearer"}

    def __init__(self, message: str = "Could not validate credentials"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class ForbiddenException(AppException):
    """Ownership or role mismatch."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class PersistenceException(AppException):
    """Store unavailable or a required write failed."""

    def __init__(self, message: str = "Database unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)


class PaymentInitiationException(AppException):
    """Payment provider rejected or could not be reached while starting a payment."""

    def __init__(self, message: str = "Failed to initiate payment"):
        """Initialize with 502 status code."""
        super().__init__(message, status_code=502)


class ProviderConfigurationException(PaymentInitiationException):
    """Payment provider credentials are missing."""

    def __init__(self, message: str = "Payment provider is not configured"):
        """Initialize with the same status code as an initiation failure."""
        super().__init__(message)
