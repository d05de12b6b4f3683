"""
Shared response envelopes.
"""
from typing import Any, Optional
from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """One failing request field."""
    field: str
    message: str
    type: str


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx response."""
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


class HealthResponse(BaseModel):
    status: str
    database: str
    reason: Optional[str] = None
