"""
Structured API errors.
Every error response carries a code, a readable message and optional details.
"""
from fastapi import HTTPException
from typing import Optional, Dict, Any


# Standard error codes
VALIDATION_ERROR = "VALIDATION_ERROR"
NOT_FOUND = "NOT_FOUND"
CONFLICT = "CONFLICT"
RATE_LIMITED = "RATE_LIMITED"
META_TOKEN_EXPIRED = "META_TOKEN_EXPIRED"
META_API_ERROR = "META_API_ERROR"
META_NOT_CONFIGURED = "META_NOT_CONFIGURED"


def raise_api_error(
    code: str,
    message: str,
    status_code: int = 400,
    details: Optional[Dict[str, Any]] = None,
) -> HTTPException:
    """
    Raises an HTTPException with a structured error body.

    Args:
        code: Error code (e.g. "NOT_FOUND")
        message: Human readable message
        status_code: HTTP status (default 400)
        details: Optional extra details

    Returns:
        HTTPException (never returns, always raises)
    """
    error_detail: Dict[str, Any] = {
        "code": code,
        "message": message,
    }
    if details:
        error_detail["details"] = details

    raise HTTPException(status_code=status_code, detail=error_detail)


def raise_validation_error(message: str, details: Optional[Dict[str, Any]] = None) -> HTTPException:
    return raise_api_error(VALIDATION_ERROR, message, status_code=400, details=details)


def raise_not_found(message: str) -> HTTPException:
    return raise_api_error(NOT_FOUND, message, status_code=404)
