"""Structured error helpers for API responses and domain exceptions."""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import Request
from fastapi.responses import JSONResponse


def build_error_payload(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    payload = {"error": {"code": code, "message": message}}
    if details is not None:
        payload["error"]["details"] = details
    return payload


class AppError(Exception):
    """Application-scoped error for standardized API responses."""

    def __init__(self, status_code: int, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = build_error_payload(code, message, details)


async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.payload)


def raise_app_error(status_code: int, code: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
    """Raise an AppError with a standardized error shape."""
    raise AppError(status_code, code, message, details)


class AssetNotFoundError(Exception):
    """Raised when a job or retry refers to an asset that does not exist."""

    def __init__(self, asset_id: UUID):
        super().__init__(f"Asset {asset_id} not found")
        self.asset_id = asset_id


class GenerationError(Exception):
    """Raised when speech synthesis or video muxing fails."""

    def __init__(
        self,
        service: str,
        message: str,
        retryable: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.service = service
        self.retryable = retryable
        self.details = details or {}


class DeliveryError(Exception):
    """Raised when a message or video could not be delivered to one user."""

    def __init__(self, user_id: Optional[int], message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.user_id = user_id
        self.details = details or {}


class TelegramApiError(DeliveryError):
    """Bot API answered ok=false, or the request never reached it."""

    def __init__(
        self,
        method: str,
        message: str,
        user_id: Optional[int] = None,
        error_code: Optional[int] = None,
    ):
        super().__init__(user_id, f"{method}: {message}", {"method": method, "error_code": error_code})
        self.method = method
        self.error_code = error_code
