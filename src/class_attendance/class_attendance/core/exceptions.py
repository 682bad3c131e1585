class DomainError(Exception):
    """Base exception for business rule violations."""

    code = "DOMAIN_ERROR"


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""

    code = "VALIDATION_FAILED"


class UnsupportedFileTypeError(ValidationError):
    code = "UNSUPPORTED_FILE_TYPE"


class FileTooLargeError(ValidationError):
    code = "FILE_TOO_LARGE"


class InvalidCodeError(ValidationError):
    """Submitted attendance code does not match the session's current code."""

    code = "INVALID_CODE"


class AuthenticationError(DomainError):
    """Raised when no valid principal is present."""

    code = "UNAUTHORIZED"


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""

    code = "FORBIDDEN"


class NotEnrolledError(AuthorizationError):
    code = "NOT_ENROLLED"


class NotFoundError(DomainError):
    code = "NOT_FOUND"


class InvalidTransitionError(DomainError):
    """State machine precondition violated."""

    code = "INVALID_TRANSITION"


class SessionNotOpenError(InvalidTransitionError):
    code = "SESSION_NOT_OPEN"


class AlreadyDecidedError(InvalidTransitionError):
    code = "ALREADY_DECIDED"


class WrongMethodError(DomainError):
    code = "WRONG_METHOD"


class ConflictError(DomainError):
    """Uniqueness constraint violated in the store."""

    code = "CONFLICT"


class DuplicateRecordError(ConflictError):
    code = "DUPLICATE_RECORD"


class DuplicateActiveRequestError(ConflictError):
    code = "DUPLICATE_ACTIVE_REQUEST"


class SessionInUseError(ConflictError):
    """Session still has attendance records or excuse requests attached."""

    code = "SESSION_IN_USE"
