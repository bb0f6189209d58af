# Overview: Request and role decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .extensions import db
from .models import User

USER_HEADER = "X-User-Id"


def _resolve_user() -> User | None:
    raw = request.headers.get(USER_HEADER, "").strip()
    if not raw.isdigit():
        return None
    user = db.session.get(User, int(raw))
    if user is None or not user.is_active:
        return None
    return user


def require_user(f):
    """
    Resolve the acting user from the X-User-Id header.

    Identity is established upstream; here we only look the user up and
    set g.current_user. Unknown or inactive users get 401.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = _resolve_user()
        if user is None:
            return jsonify({"error": "Authentication required"}), 401
        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require g.current_user to have one of ``roles``. Use after @require_user."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"error": "Authentication required"}), 401
            if user.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_role": list(roles),
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator
