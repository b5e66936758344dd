# Overview: Request decorators for API routes: authentication and the role gate.

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import ForbiddenError, UnauthorizedError
from .services import auth_service, role_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def get_bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid access token.

    Sets:
    - g.current_user: the authenticated User
    - g.user_roles: role names in effect for the user (resolved per request)

    Returns 401 if:
    - No Authorization header
    - Invalid or expired token
    - Unknown user or deactivated account
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            user = auth_service.decode_access_token(get_bearer_token())
        except UnauthorizedError as e:
            return jsonify({"error": str(e)}), 401

        g.current_user = user
        g.user_roles = role_service.get_user_roles(user.id)

        return f(*args, **kwargs)

    return decorated_function


def require_roles(*role_names):
    """
    Require at least one of the given roles. No roles listed means no
    requirement. Must be stacked below @require_auth.

    Denial is 403, including when no user was resolved.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_roles = g.user_roles if _is_authenticated() else None

            try:
                role_service.require_roles_satisfied(role_names, user_roles)
            except ForbiddenError as e:
                current_app.logger.warning(
                    "Role check failed for %s %s: required=%s user=%s",
                    request.method,
                    request.path,
                    e.required_roles,
                    g.current_user.id if _is_authenticated() else None,
                )
                return jsonify(e.to_dict()), e.status_code

            return f(*args, **kwargs)

        return decorated_function
    return decorator


# Role sets used by the blueprints
ADMIN_ROLES = ("ADMIN",)
DELETE_ROLES = ("ADMIN", "SALES_MANAGER")
WRITE_ROLES = ("ADMIN", "SALES_MANAGER", "SALES", "TECHNICAL_SPECIALIST")
READ_ROLES = WRITE_ROLES + ("USER",)
