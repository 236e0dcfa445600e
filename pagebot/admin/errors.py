# pagebot/admin/errors.py
"""
Typed errors for the admin application service.

Each error maps to an HTTP status code. The transport layer catches
``AdminError`` subtypes and converts them to ``HTTPException``.
"""
from __future__ import annotations


class AdminError(Exception):
    """Base class for all admin errors."""

    status_code: int = 500

    def __init__(self, detail: str = "Internal error"):
        self.detail = detail
        super().__init__(detail)


class ValidationError(AdminError):
    """Invalid request payload (400)."""

    status_code = 400


class NotFoundError(AdminError):
    """Resource not found (404)."""

    status_code = 404
