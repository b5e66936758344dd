# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

"""
Admin routes for user and role management.

Provides endpoints for:
- User management (list, get, create, activate/deactivate)
- Role grants (list, sync SYSTEM-assigned roles)
- Role definitions (list, get, update metadata and the opaque permissions JSON)

All endpoints require authentication and the ADMIN role.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ServiceError
from ..extensions import db
from ..models import User
from ..services import auth_service, role_service, token_service
from ..services.auth_service import PasswordValidationError
from ..decorators import require_auth, require_roles, ADMIN_ROLES

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _user_dict(user: User) -> dict:
    user_dict = user.to_dict()
    user_dict["roles"] = role_service.get_user_roles(user.id)
    return user_dict


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_roles(*ADMIN_ROLES)
def list_users():
    """
    List users with their roles in effect.

    Query params:
    - include_inactive: bool (default false) - include deactivated users
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"

    query = db.session.query(User)
    if not include_inactive:
        query = query.filter_by(is_active=True)

    users = query.order_by(User.email).all()
    result = [_user_dict(user) for user in users]
    return jsonify({"users": result, "count": len(result)})


@admin_bp.get("/users/<int:user_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def get_user(user_id: int):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404
    return jsonify({"user": _user_dict(user)})


@admin_bp.post("/users")
@require_auth
@require_roles(*ADMIN_ROLES)
def create_user():
    """
    Create a new user.

    Request body:
    - email: str (required)
    - password: str (required)
    - first_name, last_name, display_name: str (optional)
    - roles: list[str] (optional, default ["USER"])
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")
    roles = data.get("roles")

    if not all([email, password]):
        return jsonify({"error": "email and password required"}), 400
    if roles is not None and (not isinstance(roles, list) or not all(isinstance(r, str) for r in roles)):
        return jsonify({"error": "roles must be a list of role names"}), 400

    try:
        user = auth_service.create_user(
            email=email,
            password=password,
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            display_name=data.get("display_name"),
            roles=roles,
        )
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    current_app.logger.info("Admin %s created user %s", g.current_user.id, user.id)
    return jsonify({"user": _user_dict(user)}), 201


@admin_bp.post("/users/<int:user_id>/deactivate")
@require_auth
@require_roles(*ADMIN_ROLES)
def deactivate_user(user_id: int):
    """Deactivate a user and revoke all their refresh tokens."""
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404
    if user.id == g.current_user.id:
        return jsonify({"error": "Cannot deactivate your own account"}), 400

    user.is_active = False
    db.session.commit()
    revoked = token_service.revoke_all_user_tokens(user.id)

    return jsonify({"user": _user_dict(user), "revoked_tokens": revoked})


@admin_bp.post("/users/<int:user_id>/activate")
@require_auth
@require_roles(*ADMIN_ROLES)
def activate_user(user_id: int):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404

    user.is_active = True
    db.session.commit()
    return jsonify({"user": _user_dict(user)})


# =============================================================================
# ROLE GRANTS
# =============================================================================

@admin_bp.get("/users/<int:user_id>/roles")
@require_auth
@require_roles(*ADMIN_ROLES)
def get_user_roles(user_id: int):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404
    return jsonify({"user_id": user.id, "roles": role_service.get_user_roles(user.id)})


@admin_bp.put("/users/<int:user_id>/roles")
@require_auth
@require_roles(*ADMIN_ROLES)
def sync_user_roles(user_id: int):
    """
    Replace the user's SYSTEM-assigned roles.

    Request body:
    - roles: list[str] (role names; unknown names are created)

    Grants made by other assigners are left untouched.
    """
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404

    data = request.get_json(silent=True) or {}
    roles = data.get("roles")
    if not isinstance(roles, list) or not all(isinstance(r, str) and r.strip() for r in roles):
        return jsonify({"error": "roles must be a list of role names"}), 400

    changes = role_service.sync_user_role_names(user.id, [r.strip().upper() for r in roles])
    return jsonify({
        "user_id": user.id,
        "roles": role_service.get_user_roles(user.id),
        "removed_role_ids": changes["removed"],
        "added_role_ids": changes["added"],
    })


# =============================================================================
# ROLE DEFINITIONS
# =============================================================================

@admin_bp.get("/roles")
@require_auth
@require_roles(*ADMIN_ROLES)
def list_roles():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    roles = role_service.list_roles(include_inactive=include_inactive)
    return jsonify({"roles": [r.to_dict() for r in roles], "count": len(roles)})


@admin_bp.get("/roles/<int:role_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def get_role(role_id: int):
    try:
        role = role_service.get_role(role_id)
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    return jsonify({"role": role.to_dict()})


@admin_bp.put("/roles/<int:role_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def update_role(role_id: int):
    """
    Update role metadata.

    Request body (all optional):
    - display_name, description: str
    - permissions: JSON (stored as-is; not used for authorization)
    - is_active: bool
    """
    data = request.get_json(silent=True) or {}
    is_active = data.get("is_active")
    if is_active is not None and not isinstance(is_active, bool):
        return jsonify({"error": "is_active must be a boolean"}), 400

    try:
        role = role_service.update_role(
            role_id,
            display_name=data.get("display_name"),
            description=data.get("description"),
            permissions=data.get("permissions"),
            is_active=is_active,
        )
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code

    return jsonify({"role": role.to_dict()})
