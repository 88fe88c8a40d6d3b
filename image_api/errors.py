"""
Error taxonomy cho Image API
Mỗi error mang status_code và code để transport layer map sang response
"""

from typing import Optional


class ImageApiError(Exception):
    """Base exception cho mọi lỗi của service"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ImageApiError):
    """Bad or missing parameters"""

    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        step_index: Optional[int] = None,
        step_type: Optional[str] = None,
    ):
        self.field = field
        self.step_index = step_index
        self.step_type = step_type
        super().__init__(message)


class UnknownOperationError(ValidationError):
    """Operation tag không nằm trong bảng operations"""

    code = "UNKNOWN_OPERATION"

    def __init__(self, operation_type, step_index: Optional[int] = None):
        self.operation_type = operation_type
        super().__init__(
            f"unknown operation type: {operation_type}",
            field="type",
            step_index=step_index,
        )


class UnauthorizedError(ImageApiError):
    """Missing or invalid credentials"""

    status_code = 401
    code = "UNAUTHORIZED"


class InvalidTokenError(UnauthorizedError):
    """Token could not be verified"""


class InvalidCredentialsError(UnauthorizedError):
    """Email/password pair does not match a stored user"""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class ProcessingError(ImageApiError):
    """Image transformation failed"""

    status_code = 422
    code = "PROCESSING_ERROR"


class PipelineStepError(ProcessingError):
    """A pipeline step failed; carries the 1-based step index and its type"""

    def __init__(self, step_index: int, step_type: str, cause: Exception):
        self.step_index = step_index
        self.step_type = step_type
        self.cause = cause
        detail = cause.message if isinstance(cause, ImageApiError) else str(cause)
        super().__init__(f"Step {step_index} ({step_type}) failed: {detail}")


class UnsupportedFormatError(ImageApiError):
    """Input is not a decodable image in a supported format"""

    status_code = 415
    code = "UNSUPPORTED_FORMAT"


class FileTooLargeError(ImageApiError):
    status_code = 413
    code = "FILE_TOO_LARGE"


class StorageError(ImageApiError):
    """User storage failure"""

    code = "STORAGE_ERROR"


class UserAlreadyExistsError(StorageError):
    status_code = 409
    code = "USER_EXISTS"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"User already exists: {email}")


class LoggingError(ImageApiError):
    """One or more log sinks failed to persist an entry"""

    code = "LOGGING_ERROR"

    def __init__(self, message: str, failures: Optional[list] = None):
        self.failures = failures or []
        super().__init__(message)
