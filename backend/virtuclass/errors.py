"""
Application error taxonomy.

Services raise these exceptions at the top of an operation when an input,
ownership or state check fails. The handlers registered in main.py render
them as {"detail": ..., "code": ...} JSON with the matching status code.
"""


class AppError(Exception):
    """Base class for errors that map onto a client-visible response."""
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: str = None, code: str = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class InvalidTokenError(ValidationError):
    code = "INVALID_TOKEN"
    default_message = "Invalid token"


class AuthenticationError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class InvalidCredentialsError(AuthenticationError):
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class AuthorizationError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Forbidden"


class EmailNotVerifiedError(AuthorizationError):
    code = "EMAIL_NOT_VERIFIED"
    default_message = "Email not verified"


class PendingApprovalError(AuthorizationError):
    code = "PENDING_APPROVAL"
    default_message = "Your teacher account is pending admin approval"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Conflict"


class InvalidStateError(AppError):
    status_code = 400
    code = "INVALID_STATE"
    default_message = "Operation not allowed in the current state"


class DependencyError(AppError):
    """A third-party service (mail, calendar, storage) failed. Never retried."""
    status_code = 500
    code = "DEPENDENCY_ERROR"
    default_message = "External service failure"


class InternalError(AppError):
    pass
