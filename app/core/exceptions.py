from datetime import datetime
from typing import Dict, Any, Optional
from fastapi import status


class BaseCustomException(Exception):
    """Base class for custom exceptions"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.error_code = error_code
        super().__init__(self.message)


class ValidationError(BaseCustomException):
    """Malformed input; the client must fix and resubmit"""

    def __init__(
        self,
        message: str = "Validation failed",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            error_code=error_code or "VALIDATION_ERROR"
        )


class AuthenticationError(BaseCustomException):
    """Exception for authentication errors"""

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
            error_code=error_code or "AUTHENTICATION_ERROR"
        )


class InvalidTokenError(AuthenticationError):
    """Bearer token is malformed, tampered with, or expired"""

    def __init__(
        self,
        message: str = "Invalid or expired token",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            details=details,
            error_code=error_code or "INVALID_TOKEN"
        )


class AuthorizationError(BaseCustomException):
    """Exception for authorization errors"""

    def __init__(
        self,
        message: str = "Access denied",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
            error_code=error_code or "AUTHORIZATION_ERROR"
        )


class NotFoundError(BaseCustomException):
    """Exception for resource not found errors"""

    def __init__(
        self,
        message: str = "Resource not found",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
            error_code=error_code or "NOT_FOUND_ERROR"
        )


class OtpNotFoundError(NotFoundError):
    """No pending OTP exists for the email"""

    def __init__(self, message: str = "No pending OTP found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details, error_code="OTP_NOT_FOUND")


class InvalidOtpError(ValidationError):
    """Submitted code does not match the active OTP"""

    def __init__(self, message: str = "Invalid OTP", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details, error_code="INVALID_OTP")


class OtpExpiredError(ValidationError):
    """Active OTP is past its expiry"""

    def __init__(self, message: str = "OTP expired", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details, error_code="OTP_EXPIRED")


class ConflictError(BaseCustomException):
    """Exception for conflict errors"""

    def __init__(
        self,
        message: str = "Resource conflict",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
            error_code=error_code or "CONFLICT_ERROR"
        )


class DuplicateAccountError(ConflictError):
    """An account already exists for the email"""

    def __init__(
        self,
        message: str = "You already have an account. Please login.",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message=message, details=details, error_code="DUPLICATE_ACCOUNT")


class DeliveryError(BaseCustomException):
    """Outbound email could not be delivered"""

    def __init__(
        self,
        message: str = "Failed to deliver email",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
            error_code=error_code or "DELIVERY_ERROR"
        )


def create_error_response(
    exception: BaseCustomException,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """Create standardized error response"""
    response = {
        "error": exception.__class__.__name__.replace("Error", " Error").strip(),
        "message": exception.message,
        "error_code": exception.error_code,
        "timestamp": datetime.utcnow().isoformat(),
        "request_id": request_id
    }

    if exception.details:
        response["details"] = exception.details

    return response


def create_validation_error_response(
    message: str,
    validation_errors: Optional[list] = None,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """Create validation error response for request body/form failures"""
    response = {
        "error": "Validation Error",
        "message": message,
        "error_code": "VALIDATION_ERROR",
        "timestamp": datetime.utcnow().isoformat(),
        "request_id": request_id
    }

    if validation_errors:
        response["validation_errors"] = validation_errors

    return response
