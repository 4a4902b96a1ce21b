# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


def _header_int(name: str) -> int | None:
    raw = request.headers.get(name, "").strip()
    if not raw.isdigit():
        return None
    value = int(raw)
    return value if value > 0 else None


def require_business_context(f):
    """
    Establish tenant and actor context from upstream headers.

    Authentication happens in front of this service; it forwards the
    resolved identity as X-Business-Id / X-Actor-Id. Sets:
    - g.business_id: tenant scope for every service call
    - g.actor_id: user performing the operation

    Returns 401 if either header is missing or not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        business_id = _header_int("X-Business-Id")
        actor_id = _header_int("X-Actor-Id")

        if business_id is None or actor_id is None:
            return jsonify({"error": "Business context required"}), 401

        g.business_id = business_id
        g.actor_id = actor_id
        return f(*args, **kwargs)

    return decorated_function
