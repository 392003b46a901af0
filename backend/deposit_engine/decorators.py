# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


def require_actor(f):
    """
    Establish the acting staff member for the request.

    Authentication happens upstream; this engine only records who acted.
    Sets g.actor_user_id from the X-User-Id header (None when absent).

    Returns 400 if the header is present but not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get("X-User-Id")

        if raw is None or not raw.strip():
            g.actor_user_id = None
        elif raw.strip().isdigit() and int(raw) > 0:
            g.actor_user_id = int(raw)
        else:
            return jsonify({"error": "X-User-Id must be a positive integer", "code": "validation_error"}), 400

        return f(*args, **kwargs)

    return decorated_function
