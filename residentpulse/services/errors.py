"""Recoverable service errors. Blueprints render them as JSON via one handler."""
from typing import Optional


class ServiceError(RuntimeError):
    code = "service_error"
    status = 400

    def __init__(self, message: str, *, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.reason:
            payload["reason"] = self.reason
        return payload


class ValidationError(ServiceError):
    code = "validation_error"
    status = 400


class NotFound(ServiceError):
    code = "not_found"
    status = 404


class RateLimited(ServiceError):
    code = "rate_limited"
    status = 429

    def __init__(self, message: str, *, retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.retry_after is not None:
            payload["retry_after"] = self.retry_after
        return payload


class PreconditionFailed(ServiceError):
    code = "precondition_failed"
    status = 409


class ExternalServiceError(ServiceError):
    code = "external_service_error"
    status = 502
