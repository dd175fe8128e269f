from dataclasses import dataclass
from enum import StrEnum


class ErrorCode(StrEnum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(slots=True)
class ApiError(Exception):
    status_code: int
    error_code: ErrorCode
    message: str


class LlmUnavailableError(RuntimeError):
    """The language model provider could not produce a usable answer."""


class AnalysisFailedError(RuntimeError):
    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class ProgressStorageError(RuntimeError):
    """Persisting progress failed; callers must not treat this as saved."""


class StreamError(RuntimeError):
    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.detail = detail


class RecorderError(RuntimeError):
    def __init__(self, message: str, *, category: str) -> None:
        super().__init__(message)
        self.category = category


def map_status_to_error_code(status_code: int) -> ErrorCode:
    if status_code in (400, 422):
        return ErrorCode.VALIDATION_ERROR
    if status_code == 404:
        return ErrorCode.NOT_FOUND
    if status_code == 409:
        return ErrorCode.CONFLICT
    if status_code == 429:
        return ErrorCode.RATE_LIMITED
    if status_code in (502, 503, 504):
        return ErrorCode.UPSTREAM_ERROR
    if status_code == 507:
        return ErrorCode.STORAGE_ERROR
    return ErrorCode.INTERNAL_ERROR


def build_error_payload(error_code: ErrorCode, message: str, request_id: str) -> dict:
    return {
        "error_code": error_code.value,
        "message": message,
        "request_id": request_id,
    }
