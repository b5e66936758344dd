# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

PUBLIC: register, login, refresh, logout.
AUTHENTICATED: profile, me, logout-all.

Access tokens go in the Authorization header as "Bearer <token>".
Refresh tokens are only ever sent in request bodies.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import ServiceError
from ..services import auth_service
from ..services.auth_service import PasswordValidationError
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _client_context() -> dict:
    return {
        "user_agent": request.headers.get("User-Agent"),
        "ip_address": request.remote_addr,
    }


@auth_bp.post("/register")
def register_route():
    """
    Self-registration. New users get the USER role.

    Returns user, access_token, refresh_token and expires_in (201).
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not all([email, password]):
        return jsonify({"error": "email and password required"}), 400

    try:
        result = auth_service.register(
            email=email,
            password=password,
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            display_name=data.get("display_name"),
            **_client_context(),
        )
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(result), 201


@auth_bp.post("/login")
def login_route():
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not all([email, password]):
        return jsonify({"error": "email and password required"}), 400

    try:
        result = auth_service.login_with_credentials(email, password, **_client_context())
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code

    return jsonify(result), 200


@auth_bp.post("/refresh")
def refresh_route():
    """Rotate the refresh token; the presented one stops working."""
    data = request.get_json(silent=True) or {}
    refresh_token = data.get("refresh_token")
    if not refresh_token:
        return jsonify({"error": "refresh_token required"}), 400

    try:
        result = auth_service.refresh_tokens(refresh_token, **_client_context())
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code

    return jsonify(result), 200


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke the given refresh token. Always succeeds, even for expired or
    unknown tokens.
    """
    data = request.get_json(silent=True) or {}
    auth_service.logout(data.get("refresh_token"))
    return jsonify({"message": "Logged out successfully"}), 200


@auth_bp.post("/logout-all")
@require_auth
def logout_all_route():
    count = auth_service.logout_all(g.current_user.id)
    current_app.logger.info("User %s revoked %s refresh tokens", g.current_user.id, count)
    return jsonify({"message": "Logged out from all devices", "revoked": count}), 200


@auth_bp.get("/profile")
@require_auth
def profile_route():
    return jsonify(auth_service.get_profile(g.current_user, roles=g.user_roles)), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    """Identity summary as carried in the access token."""
    user = g.current_user
    return jsonify({
        "id": user.id,
        "email": user.email,
        "display_name": user.display_name,
        "role": g.user_roles[0] if g.user_roles else auth_service.DEFAULT_ROLE,
        "roles": g.user_roles,
    }), 200
