# Overview: Service-layer operations for auth; passwords, login, registration and access tokens.

"""
Authentication Service

Users log in with e-mail and password and receive an access token (a
short-lived JWT carrying identity and role names) plus a refresh token
(see token_service.py). Refresh rotates the pair.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit and special character
- Inactive accounts cannot log in, refresh, or pass require_auth
- Access-token claims: {sub, email, role, roles}; role is the first role
  name or "USER" when the user has none
"""

import re
from datetime import timedelta

import bcrypt
from flask import current_app
from jose import JWTError, jwt

from ..errors import BadRequestError, UnauthorizedError
from ..extensions import db
from ..models import User
from ..time_utils import utcnow
from . import role_service, token_service


DEFAULT_ROLE = "USER"


class PasswordValidationError(ValueError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Hash password using bcrypt (validated for strength first)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str | None) -> bool:
    """Timing-safe bcrypt check. Malformed hashes never match."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def find_user_by_email(email: str) -> User | None:
    return db.session.query(User).filter_by(email=normalize_email(email)).first()


def create_user(
    email: str,
    password: str,
    first_name: str | None = None,
    last_name: str | None = None,
    display_name: str | None = None,
    roles: list[str] | None = None,
) -> User:
    """
    Create a user and grant the given roles (default: USER).

    Raises BadRequestError on duplicate e-mail, PasswordValidationError on a
    weak password.
    """
    email = normalize_email(email)
    if not email:
        raise ValueError("Email is required")
    if find_user_by_email(email):
        raise BadRequestError("User with this email already exists")

    if not display_name:
        display_name = " ".join(part for part in (first_name, last_name) if part) or email

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        display_name=display_name,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()

    role_service.sync_user_role_names(user.id, roles or [DEFAULT_ROLE])
    current_app.logger.info("Created user %s (%s)", user.id, user.email)
    return user


# =============================================================================
# Access tokens
# =============================================================================

def access_token_lifetime() -> timedelta:
    return timedelta(minutes=current_app.config["JWT_ACCESS_EXPIRES_MINUTES"])


def generate_access_token(user: User, roles: list[str] | None = None) -> str:
    if roles is None:
        roles = role_service.get_user_roles(user.id)
    now = utcnow()
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "role": roles[0] if roles else DEFAULT_ROLE,
        "roles": roles,
        "iat": now,
        "exp": now + access_token_lifetime(),
    }
    return jwt.encode(
        claims,
        current_app.config["JWT_SECRET"],
        algorithm=current_app.config["JWT_ALGORITHM"],
    )


def decode_access_token(token: str | None) -> User:
    """
    Resolve a bearer token to an active user.

    Raises UnauthorizedError for a missing, invalid or expired token and for
    unknown or inactive users.
    """
    if not token:
        raise UnauthorizedError("Missing authentication token")
    try:
        payload = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
        )
        user_id = int(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise UnauthorizedError("Invalid or expired token")

    user = db.session.get(User, user_id)
    if not user:
        raise UnauthorizedError("User not found")
    if not user.is_active:
        raise UnauthorizedError("User account is inactive")
    return user


def _issue_tokens(user: User, user_agent: str | None = None, ip_address: str | None = None) -> dict:
    roles = role_service.get_user_roles(user.id)
    return {
        "user": get_profile(user, roles=roles),
        "access_token": generate_access_token(user, roles=roles),
        "refresh_token": token_service.generate_refresh_token(user.id, user_agent, ip_address),
        "token_type": "Bearer",
        "expires_in": int(access_token_lifetime().total_seconds()),
    }


# =============================================================================
# Flows
# =============================================================================

def register(
    email: str,
    password: str,
    first_name: str | None = None,
    last_name: str | None = None,
    display_name: str | None = None,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> dict:
    user = create_user(email, password, first_name, last_name, display_name)
    return _issue_tokens(user, user_agent, ip_address)


def authenticate(email: str, password: str) -> User | None:
    """
    Return the active user for the credentials, or None.

    Updates last_login_at on success.
    """
    user = find_user_by_email(email)
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def login_with_credentials(
    email: str,
    password: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> dict:
    user = authenticate(email, password)
    if not user:
        current_app.logger.info("Failed login for %s", normalize_email(email))
        raise UnauthorizedError("Invalid credentials")
    return _issue_tokens(user, user_agent, ip_address)


def refresh_tokens(
    refresh_token: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> dict:
    """Rotate: the presented token is revoked and a new pair is issued."""
    user_id = token_service.validate_refresh_token(refresh_token)
    if user_id is None:
        raise UnauthorizedError("Invalid refresh token")

    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        raise UnauthorizedError("User not found or inactive")

    token_service.revoke_refresh_token(refresh_token)
    return _issue_tokens(user, user_agent, ip_address)


def logout(refresh_token: str | None) -> None:
    token_service.revoke_refresh_token(refresh_token)


def logout_all(user_id: int) -> int:
    return token_service.revoke_all_user_tokens(user_id)


def get_profile(user: User, roles: list[str] | None = None) -> dict:
    if roles is None:
        roles = role_service.get_user_roles(user.id)
    data = user.to_dict()
    data["roles"] = roles
    data["role"] = roles[0] if roles else DEFAULT_ROLE
    return data
