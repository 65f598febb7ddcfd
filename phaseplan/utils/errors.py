"""JSON error envelope shared by every blueprint.

Body shape: ``{"error": <message>, "code": "ERR_...", "details": {...}?}``

    return api_error(E.NOT_FOUND, "Project not found")
    return api_error(E.RATE_LIMITED, "Refresh cooldown", details={"wait_minutes": 12})
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes, grouped by the HTTP status they map to."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"   # 400
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"     # 400
    UNAUTHORIZED = "ERR_UNAUTHORIZED"                 # 401
    NOT_FOUND = "ERR_NOT_FOUND"                       # 404
    RATE_LIMITED = "ERR_RATE_LIMITED"                 # 429
    NOT_CONFIGURED = "ERR_NOT_CONFIGURED"             # 500
    INTERNAL = "ERR_INTERNAL"                         # 500


HTTP_STATUS = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHORIZED: 401,
    E.NOT_FOUND: 404,
    E.RATE_LIMITED: 429,
    E.NOT_CONFIGURED: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """
    Build a ``(response, status)`` tuple for a Flask view.

    ``status`` overrides the code's default; unknown codes fall back to 400.
    """
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or HTTP_STATUS.get(code, 400)
