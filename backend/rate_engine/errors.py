from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class AppError(Exception):
    status_code: int
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    retryable: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "details": self.details or {},
        }
        if self.retryable is not None:
            payload["retryable"] = self.retryable
        return {"error": payload}


class NotFoundError(AppError):
    """A referenced configuration document (room type, market, rate...) is missing."""

    def __init__(self, code: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(status_code=404, code=code, message=code, details=details or {})


class BadRequestError(AppError):
    """The request itself is malformed (date range, missing fields)."""

    def __init__(self, code: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(status_code=400, code=code, message=code, details=details or {})


class PricingError(AppError):
    """A price could not be produced or failed validation."""

    def __init__(self, code: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(status_code=422, code=code, message=code, details=details or {})


def error_response(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        }
    }
