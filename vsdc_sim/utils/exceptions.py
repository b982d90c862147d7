from __future__ import annotations

from typing import Any, ClassVar, Optional

from vsdc_sim.utils.error_codes import ERROR_MESSAGES, ErrorCode


def _coerce_code(value: ErrorCode | str | None, fallback: ErrorCode) -> ErrorCode:
    if isinstance(value, ErrorCode):
        return value
    if value:
        try:
            return ErrorCode(str(value))
        except ValueError:
            pass
    return fallback


class SimulatorException(Exception):
    """Base exception for the simulator service.

    Subclasses pin an error code and HTTP status; the FastAPI handler in
    `vsdc_sim.main` renders `to_dict()` as the response body.
    """

    default_code: ClassVar[ErrorCode] = ErrorCode.E005
    default_status: ClassVar[int] = 500

    def __init__(
        self,
        message: str | None = None,
        *,
        code: ErrorCode | str | None = None,
        details: Optional[dict[str, Any]] = None,
        status_code: int | None = None,
    ):
        error_code = _coerce_code(code, self.default_code)
        self.code = error_code.value
        self.message = message or ERROR_MESSAGES[error_code]
        self.details = dict(details or {})
        self.status_code = status_code or self.default_status
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message, "details": self.details}}


class BadRequestException(SimulatorException):
    default_code = ErrorCode.E002
    default_status = 400


class NotFoundException(SimulatorException):
    default_code = ErrorCode.E001
    default_status = 404


class TooManyRequestsException(SimulatorException):
    default_code = ErrorCode.E003
    default_status = 429


class ServiceUnavailableException(SimulatorException):
    default_code = ErrorCode.E004
    default_status = 503
