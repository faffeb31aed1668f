"""
middleware/identity_middleware.py — Caller identity decorator.

Authentication is handled outside this service; by the time a request
arrives the caller's username travels in a header (IDENTITY_HEADER in
config, "X-Username" by default).

The @require_user decorator:
  1. Reads the identity header
  2. Rejects missing / blank values with IDENTITY_MISSING (401)
  3. Attaches the username (str) to flask.g.username

Strict responsibility boundary:
  - Middleware = identity (401). Membership and admin checks (403) belong
    to the service layer, which receives the username as a plain string.
"""

from __future__ import annotations

import functools
from typing import Callable

from flask import current_app, g, request

from splitchat.app.errors import AppError, ErrorCode


def require_user(f: Callable) -> Callable:
    """
    Route decorator that enforces a caller identity.

    Usage:
        @groups_bp.route("/<group_id>")
        @require_user
        def get_group(group_id):
            username = g.username  # always a non-empty str when this runs
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _identify_request()
        return f(*args, **kwargs)

    return decorated


def _identify_request() -> None:
    header = current_app.config.get("IDENTITY_HEADER", "X-Username")
    username = request.headers.get(header, "").strip()
    if not username:
        raise AppError(
            ErrorCode.IDENTITY_MISSING,
            f"Identify yourself with the {header} header.",
            401,
        )
    g.username = username
