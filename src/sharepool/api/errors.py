from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from sharepool.runtime.errors import ApplyError

# Pool error code -> HTTP status. Unlisted codes are client errors (400).
_STATUS_BY_CODE: Dict[str, int] = {
    "unauthorized": 403,
    "not_initialized": 503,
    "transfer_failed": 502,
    "already_initialized": 409,
}


@dataclass(slots=True)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def unauthorized(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(401, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def from_apply_error(e: ApplyError) -> "ApiError":
        details = e.details if isinstance(e.details, dict) else ({} if e.details is None else {"detail": e.details})
        return ApiError(_STATUS_BY_CODE.get(e.code, 400), e.code, e.reason, details)

    def to_json(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}
