"""Pydantic models that define the API wire contract."""

from mct_api.schemas.envelope import ApiResponse, ErrorInfo, PageMeta, envelope_response

__all__ = ["ApiResponse", "ErrorInfo", "PageMeta", "envelope_response"]
