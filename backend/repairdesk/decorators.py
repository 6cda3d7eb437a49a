# Overview: Request, tenant and role decorators plus the action boundary for API routes.

from functools import wraps

from flask import Response, current_app, g, jsonify, request

from .errors import AuthorizationError, PermissionDeniedError, WorkflowError
from .extensions import db
from .identity import resolve_actor_token


def _unauthorized():
    # Never say why: missing token, bad signature and inactive user look the same
    return jsonify({"error": AuthorizationError().message}), 401


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid actor token.

    Sets the following Flask g attributes:
    - g.current_user: the acting User
    - g.tenant_id: the user's tenant (None for portal customers)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = resolve_actor_token(bearer_token())
        if user is None:
            return _unauthorized()

        g.current_user = user
        g.tenant_id = user.tenant_id
        return f(*args, **kwargs)

    return decorated_function


def require_tenant(f):
    """
    Require a staff user with a tenant context. Use below @require_auth.

    MULTI-TENANT: every tenant-scoped route reads g.tenant_id, never a
    tenant id from the request.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None or getattr(g, "tenant_id", None) is None or not user.is_staff:
            return _unauthorized()
        return f(*args, **kwargs)

    return decorated_function


def require_portal_user(f):
    """Require a portal (customer-role) identity. Use below @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None or user.role != "customer":
            return _unauthorized()
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Restrict a route to the given roles (e.g. owner/admin for deletes).
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return _unauthorized()
            if user.role not in roles:
                current_app.logger.warning(
                    "Role check failed: user=%s role=%s needs %s on %s %s",
                    user.id, user.role, "/".join(roles), request.method, request.path,
                )
                return jsonify({"error": PermissionDeniedError("Permission denied").message}), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def action_boundary(f):
    """
    Convert a route's outcome into a structured result.

    - dict            -> {"success": true, **dict}, 200
    - (dict, status)  -> {"success": true, **dict}, status
    - Response        -> passed through
    - WorkflowError   -> {"error": message}, error.status_code
    - anything else   -> logged in full, {"error": "Internal server error"}, 500
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            result = f(*args, **kwargs)
        except WorkflowError as e:
            db.session.rollback()
            body = {"error": e.message}
            if e.details and not isinstance(e, AuthorizationError):
                body["details"] = e.details
            return jsonify(body), e.status_code
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Failed to handle %s %s", request.method, request.path)
            return jsonify({"error": "Internal server error"}), 500

        if isinstance(result, Response):
            return result
        status = 200
        if isinstance(result, tuple):
            result, status = result
        payload = {"success": True}
        payload.update(result or {})
        return jsonify(payload), status

    return decorated_function
