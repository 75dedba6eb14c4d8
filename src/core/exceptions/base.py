from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(AppException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id={identifier} not found"
        super().__init__(message=message, status_code=404)


class ValidationError(AppException):
    """Validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message=message, status_code=422, details=details)


class AuthenticationError(AppException):
    """Authentication failed."""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message=message, status_code=401)


class AuthorizationError(AppException):
    """Not authorized to perform action."""

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message=message, status_code=403)


class CrossTenantError(AppException):
    """Two entities that must share a tenant belong to different tenants."""

    def __init__(self, message: str = "Transaction and booking must belong to the same tenant"):
        super().__init__(message=message, status_code=409, details={"field": "booking_id"})


class UnsupportedFormatError(AppException):
    """Statement file format is not CSV or OFX/QFX."""

    def __init__(self, file_name: str | None = None):
        message = "Unsupported file format. Please upload a CSV or OFX/QFX file."
        if file_name:
            message = f"Unsupported file format for {file_name!r}. Please upload a CSV or OFX/QFX file."
        super().__init__(message=message, status_code=415, details={"field": "file"})
