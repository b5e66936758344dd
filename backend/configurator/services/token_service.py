# Overview: Service-layer operations for refresh tokens; issue, validate, revoke, clean up.

"""
Refresh Token Service

Refresh tokens are signed JWTs carrying {sub, tokenId, exp}. The server
stores only a SHA-256 hash of the signed string, keyed by tokenId, so a
leaked database row cannot be replayed.

SECURITY FEATURES:
- Signed with JWT_REFRESH_SECRET (separate from the access-token secret)
- Stored hash must match the presented string exactly
- Rotation: callers revoke the old token when issuing a new pair
- Revocation flags the row; rows are only deleted by cleanup_expired_tokens

validate_refresh_token never raises; every failure collapses to None.
revoke_refresh_token is a no-op for tokens it cannot verify.
"""

import hashlib
import uuid
from datetime import timedelta

from flask import current_app
from jose import JWTError, jwt

from ..extensions import db
from ..models import RefreshToken
from ..time_utils import utcnow


def hash_token(token: str) -> str:
    """SHA-256 hex digest of the signed token string."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _secret() -> str:
    return current_app.config["JWT_REFRESH_SECRET"]


def _algorithm() -> str:
    return current_app.config["JWT_ALGORITHM"]


def refresh_token_lifetime() -> timedelta:
    return timedelta(days=current_app.config["JWT_REFRESH_EXPIRES_DAYS"])


def _decode(token: str) -> dict | None:
    try:
        return jwt.decode(token, _secret(), algorithms=[_algorithm()])
    except JWTError:
        return None


def generate_refresh_token(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> str:
    """
    Mint and persist a refresh token for user_id.

    Returns the signed token string (the only copy of it).
    """
    token_id = str(uuid.uuid4())
    now = utcnow()
    expires_at = now + refresh_token_lifetime()

    token = jwt.encode(
        {"sub": str(user_id), "tokenId": token_id, "iat": now, "exp": expires_at},
        _secret(),
        algorithm=_algorithm(),
    )

    db.session.add(RefreshToken(
        id=token_id,
        token_hash=hash_token(token),
        user_id=user_id,
        created_at=now,
        expires_at=expires_at,
        is_revoked=False,
        user_agent=user_agent,
        ip_address=ip_address,
    ))
    db.session.commit()
    return token


def validate_refresh_token(token: str | None) -> int | None:
    """
    Return the user id the token belongs to, or None.

    None covers bad signature, expiry, hash mismatch, revocation and a
    missing row alike.
    """
    if not token:
        return None

    payload = _decode(token)
    if not payload or "tokenId" not in payload:
        return None

    record = db.session.query(RefreshToken).filter(
        RefreshToken.id == payload["tokenId"],
        RefreshToken.token_hash == hash_token(token),
        RefreshToken.is_revoked.is_(False),
        RefreshToken.expires_at > utcnow(),
    ).first()

    if not record:
        return None
    return record.user_id


def revoke_refresh_token(token: str | None) -> bool:
    """
    Flag the token's row revoked.

    Returns True when a row changed. Unverifiable tokens are ignored so that
    logout with an expired or garbage token still succeeds.
    """
    if not token:
        return False

    payload = _decode(token)
    if not payload or "tokenId" not in payload:
        return False

    updated = db.session.query(RefreshToken).filter(
        RefreshToken.id == payload["tokenId"],
        RefreshToken.is_revoked.is_(False),
    ).update({RefreshToken.is_revoked: True}, synchronize_session="fetch")
    db.session.commit()
    return updated > 0


def revoke_all_user_tokens(user_id: int) -> int:
    """Flag every non-revoked token of the user. Returns the count."""
    updated = db.session.query(RefreshToken).filter(
        RefreshToken.user_id == user_id,
        RefreshToken.is_revoked.is_(False),
    ).update({RefreshToken.is_revoked: True}, synchronize_session="fetch")
    db.session.commit()
    return updated


def cleanup_expired_tokens(retention_days: int = 30) -> int:
    """
    Delete expired or revoked tokens created more than retention_days ago.

    Run periodically (see `flask maintenance cleanup-tokens`).
    """
    now = utcnow()
    cutoff = now - timedelta(days=retention_days)

    deleted = db.session.query(RefreshToken).filter(
        db.or_(
            RefreshToken.expires_at < now,
            RefreshToken.is_revoked.is_(True),
        ),
        RefreshToken.created_at < cutoff,
    ).delete(synchronize_session=False)

    db.session.commit()
    current_app.logger.info("Deleted %s expired or revoked refresh tokens", deleted)
    return deleted
