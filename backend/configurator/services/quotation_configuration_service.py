# Overview: Versioned quotation configuration rows; initialization, writes, history and copies.

"""
Quotation Configuration Versioning

Each (quotation, configuration) pair has an append-only chain of
QuotationConfiguration rows. Exactly one row per pair is current.

INITIALIZATION: when a quotation gains a machine, every active
configuration reachable from the machine's tabs gets one NULL row
("Initial configuration state") unless the pair already has a row.

WRITE: with no current row, insert one ("Initial configuration"). With a
current row, compare hashes of {selected_option_id, custom_value}; if the
hash and the notes are unchanged the write is a no-op. Otherwise the
current row is flagged not-current and a successor is inserted with
quotation_version + 1, previous_value_hash and a change description.

REMOVE: a versioned write of all-NULL values ("Configuration cleared").

TRANSACTIONS: the flag-old / insert-new pair runs in one transaction,
under a row lock where the backend supports it. The partial unique index
uq_quotation_configurations_current rejects a second current row; a lost
race surfaces as IntegrityError and the whole write is retried.

Functions prefixed with an underscore only stage work on db.session;
callers own the transaction.
"""

from __future__ import annotations

import hashlib
import json

from flask import current_app

from ..errors import NotFoundError
from ..extensions import db
from ..models import Configuration, ConfigurationOption, Quotation, QuotationConfiguration
from .concurrency import atomic, lock_for_update, retry_versioned_write
from .machine_service import get_machine_configuration_ids

INITIAL_STATE_DESCRIPTION = "Initial configuration state"
INITIAL_WRITE_DESCRIPTION = "Initial configuration"
CLEARED_DESCRIPTION = "Configuration cleared"
COPIED_DESCRIPTION = "Copied from parent version"
DEFAULT_CHANGE_DESCRIPTION = "Configuration updated"

_UNSET = object()


def _normalize_custom_value(value):
    if value is None:
        return None
    value = str(value)
    return value if value.strip() else None


def compute_value_hash(selected_option_id, custom_value) -> str:
    """SHA-256 over the value fields; notes are not part of the hash."""
    canonical = json.dumps(
        {"selected_option_id": selected_option_id, "custom_value": custom_value},
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _transition(label: str, old, new) -> str | None:
    if old is None and new is not None:
        return f"{label} {'selected' if label == 'Option' else 'added'}"
    if old is not None and new is None:
        return f"{label} cleared"
    if old is not None and new is not None and old != new:
        return f"{label} changed"
    return None


def describe_change(old_option_id, old_custom_value, new_option_id, new_custom_value) -> str:
    """
    "Option selected" / "Option cleared" / "Option changed" and
    "Custom value added" / "Custom value cleared" / "Custom value changed",
    joined with ", ". Falls back to "Configuration updated".
    """
    phrases = [
        phrase for phrase in (
            _transition("Option", old_option_id, new_option_id),
            _transition("Custom value", old_custom_value, new_custom_value),
        )
        if phrase
    ]
    return ", ".join(phrases) if phrases else DEFAULT_CHANGE_DESCRIPTION


# =============================================================================
# Staging helpers (no commit)
# =============================================================================

def _current_row_query(quotation_id: int, configuration_id: int):
    return db.session.query(QuotationConfiguration).filter_by(
        quotation_id=quotation_id,
        configuration_id=configuration_id,
        is_current_version=True,
    )


def _stage_initialization(quotation: Quotation) -> int:
    """Insert NULL rows for configurations of the quotation's machine. Returns rows added."""
    if quotation.machine_id is None:
        return 0

    existing = {
        configuration_id
        for (configuration_id,) in db.session.query(QuotationConfiguration.configuration_id)
        .filter(QuotationConfiguration.quotation_id == quotation.id)
        .distinct()
        .all()
    }

    added = 0
    for configuration_id in get_machine_configuration_ids(quotation.machine_id):
        if configuration_id in existing:
            continue
        db.session.add(QuotationConfiguration(
            quotation_id=quotation.id,
            configuration_id=configuration_id,
            selected_option_id=None,
            custom_value=None,
            notes=None,
            quotation_version=quotation.version,
            is_current_version=True,
            change_description=INITIAL_STATE_DESCRIPTION,
        ))
        added += 1

    db.session.flush()
    current_app.logger.debug(
        "Initialized %s configuration rows for quotation %s", added, quotation.id
    )
    return added


def _stage_versioned_write(
    quotation: Quotation,
    configuration_id: int,
    selected_option_id,
    custom_value,
    notes,
    *,
    change_description: str | None = None,
    force: bool = False,
) -> QuotationConfiguration:
    current = lock_for_update(_current_row_query(quotation.id, configuration_id)).first()

    if current is None:
        row = QuotationConfiguration(
            quotation_id=quotation.id,
            configuration_id=configuration_id,
            selected_option_id=selected_option_id,
            custom_value=custom_value,
            notes=notes,
            quotation_version=quotation.version,
            is_current_version=True,
            change_description=change_description or INITIAL_WRITE_DESCRIPTION,
        )
        db.session.add(row)
        db.session.flush()
        return row

    old_hash = compute_value_hash(current.selected_option_id, current.custom_value)
    new_hash = compute_value_hash(selected_option_id, custom_value)
    if not force and old_hash == new_hash and current.notes == notes:
        return current

    current.is_current_version = False
    # The old row must leave the current-row index before its successor enters it
    db.session.flush()

    row = QuotationConfiguration(
        quotation_id=quotation.id,
        configuration_id=configuration_id,
        selected_option_id=selected_option_id,
        custom_value=custom_value,
        notes=notes,
        quotation_version=current.quotation_version + 1,
        is_current_version=True,
        previous_value_hash=old_hash,
        change_description=change_description or describe_change(
            current.selected_option_id, current.custom_value,
            selected_option_id, custom_value,
        ),
    )
    db.session.add(row)
    db.session.flush()
    return row


def _stage_copy(source_quotation_id: int, target: Quotation, change_description: str = COPIED_DESCRIPTION) -> int:
    """Copy every current row of the source onto target as new current rows."""
    rows = get_current_configurations(source_quotation_id)
    for row in rows:
        db.session.add(QuotationConfiguration(
            quotation_id=target.id,
            configuration_id=row.configuration_id,
            selected_option_id=row.selected_option_id,
            custom_value=row.custom_value,
            notes=row.notes,
            quotation_version=target.version,
            is_current_version=True,
            change_description=change_description,
        ))
    db.session.flush()
    return len(rows)


# =============================================================================
# Public operations
# =============================================================================

def initialize_configurations(quotation: Quotation) -> int:
    """
    Create the NULL-state rows for the quotation's machine in one transaction.

    Only meaningful on the transition from no machine to a machine;
    quotation_service calls the staging helper inside its own transaction.
    """
    with atomic():
        return _stage_initialization(quotation)


def get_current_configurations(quotation_id: int) -> list[QuotationConfiguration]:
    return (
        db.session.query(QuotationConfiguration)
        .filter_by(quotation_id=quotation_id, is_current_version=True)
        .order_by(QuotationConfiguration.configuration_id.asc())
        .all()
    )


def get_current_configuration(quotation_id: int, configuration_id: int) -> QuotationConfiguration:
    row = _current_row_query(quotation_id, configuration_id).first()
    if not row:
        raise NotFoundError("Quotation configuration not found")
    return row


def get_configuration_history(quotation_id: int, configuration_id: int) -> list[QuotationConfiguration]:
    """Every row of the pair, oldest first."""
    return (
        db.session.query(QuotationConfiguration)
        .filter_by(quotation_id=quotation_id, configuration_id=configuration_id)
        .order_by(QuotationConfiguration.quotation_version.asc(), QuotationConfiguration.id.asc())
        .all()
    )


def _require_configuration(configuration_id: int) -> Configuration:
    configuration = db.session.query(Configuration).filter_by(id=configuration_id, is_active=True).first()
    if not configuration:
        raise NotFoundError("Configuration not found")
    return configuration


def _require_option(configuration_id: int, option_id) -> None:
    if option_id is None:
        return
    option = db.session.query(ConfigurationOption.id).filter_by(
        id=option_id, configuration_id=configuration_id
    ).first()
    if not option:
        raise NotFoundError("Configuration option not found")


def _run_write(
    quotation_id: int,
    configuration_id: int,
    values,
    change_description: str | None = None,
    force: bool = False,
):
    """
    values(current_row_or_None) -> (selected_option_id, custom_value, notes).

    Re-evaluated on every retry so a lost race is replayed against the
    winner's row.
    """
    def _op():
        with atomic():
            quotation = db.session.get(Quotation, quotation_id)
            current = _current_row_query(quotation_id, configuration_id).first()
            selected_option_id, custom_value, notes = values(current)
            return _stage_versioned_write(
                quotation, configuration_id, selected_option_id, custom_value, notes,
                change_description=change_description,
                force=force,
            )

    row = retry_versioned_write(_op)
    current_app.logger.info(
        "Quotation %s configuration %s now at version %s (%s)",
        quotation_id, configuration_id, row.quotation_version, row.change_description,
    )
    return row


def save_configuration(
    quotation: Quotation,
    configuration_id: int,
    selected_option_id=None,
    custom_value=None,
    notes=None,
) -> QuotationConfiguration:
    """Create-or-update write with the full set of values."""
    _require_configuration(configuration_id)
    _require_option(configuration_id, selected_option_id)
    custom_value = _normalize_custom_value(custom_value)

    return _run_write(
        quotation.id,
        configuration_id,
        lambda current: (selected_option_id, custom_value, notes),
    )


def update_configuration(
    quotation: Quotation,
    configuration_id: int,
    *,
    selected_option_id=_UNSET,
    custom_value=_UNSET,
    notes=_UNSET,
) -> QuotationConfiguration:
    """
    Partial write against an existing current row; omitted fields keep
    their current values.
    """
    get_current_configuration(quotation.id, configuration_id)
    if selected_option_id is not _UNSET:
        _require_option(configuration_id, selected_option_id)
    if custom_value is not _UNSET:
        custom_value = _normalize_custom_value(custom_value)

    def _values(current):
        if current is None:
            raise NotFoundError("Quotation configuration not found")
        return (
            current.selected_option_id if selected_option_id is _UNSET else selected_option_id,
            current.custom_value if custom_value is _UNSET else custom_value,
            current.notes if notes is _UNSET else notes,
        )

    return _run_write(quotation.id, configuration_id, _values)


def remove_configuration(quotation: Quotation, configuration_id: int) -> QuotationConfiguration:
    """Versioned clear; rows are never hard-deleted."""
    get_current_configuration(quotation.id, configuration_id)

    def _values(current):
        if current is None:
            raise NotFoundError("Quotation configuration not found")
        return None, None, None

    return _run_write(quotation.id, configuration_id, _values, change_description=CLEARED_DESCRIPTION, force=True)
