# Overview: Request and module-access decorators for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .extensions import db
from .models import AccessLevel, User, UserModuleAccess

USER_HEADER = "X-User-Id"


def _is_authenticated() -> bool:
    return getattr(g, "current_user", None) is not None


def require_user(f):
    """
    Resolve the acting user placed on the request by the identity gateway.

    Sets g.current_user. Authentication itself happens upstream; this only
    turns the forwarded id into an active User row.

    Returns 401 if the header is missing, malformed, or names an unknown or
    inactive user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(USER_HEADER, "").strip()
        if not raw:
            return jsonify({"error": "Authentication required"}), 401
        if not raw.isdigit():
            return jsonify({"error": "Invalid user id"}), 401

        user = db.session.get(User, int(raw))
        if user is None or not user.is_active:
            return jsonify({"error": "Unknown or inactive user"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_module_access(module_name: str, level: AccessLevel | str = AccessLevel.READ_ONLY):
    """
    Require at least `level` on `module_name`.

    read-only < read-write < admin.
    """
    required = AccessLevel(level)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_user was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            user = g.current_user
            access = (
                db.session.query(UserModuleAccess)
                .filter_by(user_id=user.id, module_name=module_name)
                .first()
            )
            if access is None or access.access_level.rank < required.rank:
                current_app.logger.warning(
                    "Access denied: user=%s module=%s required=%s path=%s",
                    user.id, module_name, required.value, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "module": module_name,
                    "required_access": required.value,
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
