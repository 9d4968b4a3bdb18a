"""
Custom Exception Hierarchy

Structured exceptions shared by the API layer, the batch engine and the
external-service adapters.
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"

    # Payment errors (2xxx)
    INVALID_PAYMENT_TRANSITION = "ERR_2002"

    # Webhook errors (3xxx)
    WEBHOOK_INVALID_PAYLOAD = "ERR_3001"

    # External service errors (5xxx)
    EXTERNAL_SERVICE_UNAVAILABLE = "ERR_5003"
    EXTERNAL_SERVICE_TIMEOUT = "ERR_5004"
    EXTERNAL_AUTH_FAILED = "ERR_5005"

    # Batch errors (6xxx)
    BATCH_RUN_ABORTED = "ERR_6001"
    BATCH_RUN_IN_PROGRESS = "ERR_6002"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class InvalidPaymentTransitionError(AppException):
    """מעבר סטטוס לא חוקי (למשל COMPLETED → PENDING)"""

    def __init__(self, payment_id: int | None, current_status: str, target_status: str):
        super().__init__(
            message=(
                f"Payment {payment_id} cannot move from {current_status} to {target_status}"
            ),
            error_code=ErrorCode.INVALID_PAYMENT_TRANSITION,
            status_code=409,
            details={
                "payment_id": payment_id,
                "current_status": current_status,
                "target_status": target_status,
            }
        )


class WebhookPayloadError(AppException):
    """Raised when a webhook body cannot be parsed into a payload"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.WEBHOOK_INVALID_PAYLOAD,
            status_code=400,
            details=details
        )


class ExternalServiceException(AppException):
    """Base exception for external service errors"""

    def __init__(
        self,
        service_name: str,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=503,
            details=details
        )
        self.service_name = service_name
        self.details["service"] = service_name


class ExternalApiError(ExternalServiceException):
    """
    כשל זמני של שירות חיצוני: timeout, 5xx, כשל רשת או כשל בהנפקת טוקן.

    זה סוג השגיאה היחיד שמדיניות הדילוג של job מוכנה לבלוע.
    """

    def __init__(
        self,
        service_name: str,
        message: str,
        upstream_status: int | None = None,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            service_name=service_name,
            message=message,
            error_code=error_code,
            details=details
        )
        self.upstream_status = upstream_status
        if upstream_status is not None:
            self.details["upstream_status"] = upstream_status

    @classmethod
    def from_response(
        cls,
        service_name: str,
        operation: str,
        response: Any,
        *,
        max_response_chars: int = 500
    ) -> "ExternalApiError":
        """
        יצירת ExternalApiError מתוך HTTP response בצורה עקבית.

        Args:
            service_name: שם השירות (HelloAsso, association-service...)
            operation: שם הפעולה (checkout-status, cleanup-user-data...)
            response: אובייקט response (httpx.Response)
            max_response_chars: אורך מקסימלי לשמירת גוף התשובה
        """
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return cls(
            service_name=service_name,
            message=f"{service_name} {operation} returned status {status_code}",
            upstream_status=status_code,
            details={
                "operation": operation,
                "response_text": response_text[:max_response_chars],
            },
        )


class ServiceTimeoutError(ExternalApiError):
    """Raised when an external service call exceeds its timeout"""

    def __init__(self, service_name: str, timeout_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} request timed out after {timeout_seconds}s",
            error_code=ErrorCode.EXTERNAL_SERVICE_TIMEOUT,
            details={"timeout_seconds": timeout_seconds}
        )


class TokenRefreshError(ExternalApiError):
    """Raised when the OAuth2 token endpoint fails or returns no token"""

    def __init__(self, service_name: str, message: str, upstream_status: int | None = None):
        super().__init__(
            service_name=service_name,
            message=message,
            upstream_status=upstream_status,
            error_code=ErrorCode.EXTERNAL_AUTH_FAILED,
        )


class PipelineAbortedError(AppException):
    """הרצת job נעצרה: חריגה מתקרת הדילוגים"""

    def __init__(self, job_name: str, reason: str, cause: BaseException | None = None):
        super().__init__(
            message=f"Job '{job_name}' aborted: {reason}",
            error_code=ErrorCode.BATCH_RUN_ABORTED,
            status_code=500,
            details={"job": job_name}
        )
        self.job_name = job_name
        self.__cause__ = cause


class BatchRunInProgressError(AppException):
    """Raised when a job is triggered while a previous run still holds the lock"""

    def __init__(self, job_name: str):
        super().__init__(
            message=f"Job '{job_name}' is already running",
            error_code=ErrorCode.BATCH_RUN_IN_PROGRESS,
            status_code=409,
            details={"job": job_name}
        )
