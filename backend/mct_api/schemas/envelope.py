"""
MCT API — Response Envelope
=============================

What:  The canonical shape of every API response.
Why:   One wire shape for every endpoint lets clients write a single
       response handler: check ``success``, then read ``data`` or ``error``.
How:   A generic Pydantic model. ``ApiResponse[T]`` keeps per-endpoint type
       information for FastAPI/OpenAPI while the JSON stays uniform.

Wire shape:
    {
        "success": bool,
        "data"?:  any,                                   # success only
        "error"?: {"code", "message", "details"?},       # failure only
        "meta"?:  {"page"?, "limit"?, "total"?, "total_pages"?}
    }

Invariant: exactly one of ``data`` / ``error`` is present; ``meta`` is
orthogonal to success or failure.
"""

import math
from typing import Any, Dict, Generic, Mapping, Optional, TypeVar

from fastapi.responses import JSONResponse
from pydantic import (
    BaseModel,
    Field,
    SerializerFunctionWrapHandler,
    model_serializer,
    model_validator,
)

from mct_api.exceptions import AppError, ErrorCode

T = TypeVar("T")


class ErrorInfo(BaseModel):
    """Client-facing error description. Built from an AppError, minus its cause."""

    code: ErrorCode
    message: str
    details: Optional[str] = None

    model_config = {"frozen": True}


class PageMeta(BaseModel):
    """
    Pagination metadata. Unset (None) fields are left off the wire; zeros
    are kept, so an empty result reports ``total: 0`` and ``total_pages: 0``
    instead of omitting them.
    """

    page: Optional[int] = Field(default=None, ge=0)
    limit: Optional[int] = Field(default=None, ge=0)
    total: Optional[int] = Field(default=None, ge=0)
    total_pages: Optional[int] = Field(default=None, ge=0)

    model_config = {"frozen": True}

    @classmethod
    def for_page(cls, page: int, limit: int, total: int) -> "PageMeta":
        total_pages = math.ceil(total / limit) if limit > 0 else 0
        return cls(page=page, limit=limit, total=total, total_pages=total_pages)


class ApiResponse(BaseModel, Generic[T]):
    """
    JSON envelope for all API responses.

    Build it through the classmethods rather than the constructor:
        ApiResponse.ok({"status": "ok"})
        ApiResponse.fail(NotFoundError("tournament", "42"))
        ApiResponse.paginated(items, page=1, limit=20, total=57)
    """

    success: bool
    data: Optional[T] = None
    error: Optional[ErrorInfo] = None
    meta: Optional[PageMeta] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_data_error_exclusive(self) -> "ApiResponse[T]":
        if self.success and self.error is not None:
            raise ValueError("a successful response cannot carry an error")
        if not self.success:
            if self.error is None:
                raise ValueError("a failed response must carry an error")
            if self.data is not None:
                raise ValueError("a failed response cannot carry data")
        return self

    @classmethod
    def ok(cls, data: Any, meta: Optional[PageMeta] = None) -> "ApiResponse":
        return cls(success=True, data=data, meta=meta)

    @classmethod
    def fail(cls, error: AppError, meta: Optional[PageMeta] = None) -> "ApiResponse":
        info = ErrorInfo(code=error.code, message=error.message, details=error.details)
        return cls(success=False, error=info, meta=meta)

    @classmethod
    def paginated(cls, items: Any, page: int, limit: int, total: int) -> "ApiResponse":
        return cls.ok(items, meta=PageMeta.for_page(page, limit, total))

    @model_serializer(mode="wrap")
    def _omit_empty(self, handler: SerializerFunctionWrapHandler):
        """
        Every serialization path (model_dump, FastAPI response_model,
        jsonable_encoder) produces the omit-empty wire shape.

        A success envelope always carries the ``data`` key (``null`` for an
        empty payload) so a client never sees neither data nor error.
        """
        body = handler(self)
        if self.success:
            body.pop("error", None)
        else:
            body.pop("data", None)
            if body.get("error"):
                body["error"] = _drop_none(body["error"])
        meta = _drop_none(body.pop("meta", None) or {})
        if meta:
            body["meta"] = meta
        return body

    def to_wire(self) -> Dict[str, Any]:
        """Render the JSON-ready dict with omit-empty semantics."""
        return self.model_dump(mode="json")


def _drop_none(values: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def envelope_response(
    envelope: ApiResponse,
    status_code: int = 200,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    """Wrap an envelope in a JSONResponse. The only place envelopes meet HTTP."""
    return JSONResponse(
        status_code=status_code,
        content=envelope.to_wire(),
        headers=dict(headers) if headers else None,
    )
