"""Project-wide DRF exception handler.

Every error leaving the API uses the same envelope::

    {"error": "<human readable message>", "code": "<stable machine code>"}

Clients branch on ``code``; ``error`` is for display only.
"""

from __future__ import annotations

from typing import Any

import structlog
from rest_framework import exceptions
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = structlog.get_logger(__name__)


def error_response(message: str, code: str, status_code: int) -> Response:
    return Response({"error": message, "code": code}, status=status_code)


def api_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    """Reshape DRF's default error payloads into the ``{error, code}`` envelope."""
    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, exceptions.ValidationError):
        message = _flatten_validation_detail(exc.detail)
        code = "validation_error"
    elif isinstance(exc, exceptions.APIException):
        message = str(exc.detail)
        code = _first_code(exc.get_codes())
    else:  # Http404 / PermissionDenied from Django are converted by DRF
        message = str(response.data.get("detail", "Request failed."))
        code = "error"

    logger.info(
        "api.error",
        status_code=response.status_code,
        code=code,
    )
    response.data = {"error": message, "code": code}
    return response


def _first_code(codes: Any) -> str:
    if isinstance(codes, str):
        return codes
    if isinstance(codes, dict):
        for value in codes.values():
            return _first_code(value)
    if isinstance(codes, list) and codes:
        return _first_code(codes[0])
    return "error"


def _flatten_validation_detail(detail: Any, prefix: str = "") -> str:
    """Turn DRF's nested validation detail into one readable line."""
    if isinstance(detail, dict):
        parts = [
            _flatten_validation_detail(value, f"{prefix}{key}: " if key else prefix)
            for key, value in detail.items()
        ]
        return "; ".join(part for part in parts if part)
    if isinstance(detail, list):
        return "; ".join(_flatten_validation_detail(item, prefix) for item in detail)
    return f"{prefix}{detail}"
