# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


class PermissionDeniedError(Exception):
    """Raised when the caller's role lacks a capability."""


def _is_authenticated() -> bool:
    return hasattr(g, 'data_session') and hasattr(g, 'ctx')


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require an active data session.

    Sets the following Flask g attributes:
    - g.token: the session token
    - g.data_session: the DataSession behind the token
    - g.ctx: a SessionContext (store handle, role, config snapshot) for this request

    Returns 401 if the Authorization header is missing or the token does not
    belong to an active session.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if token is None:
            return jsonify({"error": "Authentication required"}), 401

        data_session = session_service.validate_session(token)
        if data_session is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.token = token
        g.data_session = data_session
        g.ctx = data_session.context()
        return f(*args, **kwargs)

    return decorated_function


def require_owner(f):
    """Owner-only route. Must be stacked under @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if not g.ctx.is_owner:
            return jsonify({
                "error": "Permission denied",
                "required_role": session_service.OWNER,
            }), 403
        return f(*args, **kwargs)

    return decorated_function


def check_capability(ctx, capability: str) -> None:
    """
    Raises:
        PermissionDeniedError: If the caller is an employee without the capability
    """
    if not ctx.can(capability):
        raise PermissionDeniedError(f"Employees need {capability} for this action")


def require_capability(capability: str):
    """
    Require an employee capability from AppConfig.permissions.

    Owners always pass.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                check_capability(g.ctx, capability)
            except PermissionDeniedError as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": capability,
                    "message": str(e),
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
