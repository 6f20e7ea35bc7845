"""ApiResponse envelope shared by every endpoint.

Success: code 0, message "success", data set.
Failure: code is the AppError's numeric code, data is null, error_kind
carries the ErrorKind tag and retryable tells the client whether the same
request may simply be resent (CONFLICT and TIMEOUT only).

request_id defaults to a fresh id; routers and exception handlers replace
it with the one RequestLogMiddleware put on request.state so the body and
the X-Request-ID header agree.
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ApiResponse(BaseModel):
    code: int = 0
    message: str = "success"
    data: Any = None
    error_kind: str | None = None
    retryable: bool = False
    timestamp: str = Field(default_factory=_utc_now_iso)
    request_id: str = Field(default_factory=new_request_id)


def success_response(data: Any = None) -> ApiResponse:
    return ApiResponse(data=data)


def error_response(
    code: int, message: str, error_kind: str, retryable: bool = False
) -> ApiResponse:
    return ApiResponse(
        code=code,
        message=message,
        error_kind=error_kind,
        retryable=retryable,
    )
