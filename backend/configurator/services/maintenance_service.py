# Overview: Service-layer operations for maintenance; periodic cleanup jobs run from the CLI.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Quotation
from ..time_utils import utcnow
from .token_service import cleanup_expired_tokens


def cleanup_tokens(*, retention_days: int = 30) -> int:
    """Delete refresh tokens that expired or were revoked over retention_days ago."""
    return cleanup_expired_tokens(retention_days)


def expire_quotations() -> int:
    """
    Move SENT quotations whose valid_until has passed to EXPIRED.

    DRAFT quotations are left alone; they were never offered.
    """
    expired = db.session.query(Quotation).filter(
        Quotation.status == "SENT",
        Quotation.valid_until.isnot(None),
        Quotation.valid_until < utcnow(),
    ).update({Quotation.status: "EXPIRED"}, synchronize_session="fetch")
    db.session.commit()
    current_app.logger.info("Expired %s quotations", expired)
    return expired
