"""
Error envelope returned for every rejection.
"""

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    code: str
    reason: str
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail
