# Overview: Service-layer operations for quotations; numbering, version chain, cloning and pricing.

"""
Quotation Service

ACCESS: a quotation is visible to its owner (user_id) and to ADMIN and
SALES_MANAGER. Anything else is reported as NotFound.

NUMBERING: QUO-<year>-<nnn>, allocated from quotation_number_sequences
with an atomic UPDATE ... SET next_number = next_number + 1, so concurrent
creates never receive the same number.

VERSION CHAIN: create_version flags the parent is_latest_version=False and
inserts a successor (version + 1, parent_quotation_id, fresh number) with a
copy of the parent's current configuration rows. clone makes an unrelated
DRAFT quotation at version 1 with the same copy.

MACHINE ATTACHMENT: configuration rows are initialized in the same
transaction as the create/update that gives a machine-less quotation its
machine, and only then.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import BadRequestError, NotFoundError
from ..extensions import db
from ..models import Customer, Machine, Quotation, QuotationNumberSequence
from ..time_utils import current_year, utcnow
from . import quotation_configuration_service as qc_service
from .concurrency import atomic, run_with_retry
from .customer_service import can_access_customer
from .role_service import is_manager

QUOTATION_NUMBER_PREFIX = "QUO"
QUOTATION_NUMBER_PAD = 3

QUOTATION_MUTABLE_FIELDS = {"title", "status", "machine_id", "total_price", "currency", "valid_until", "version_notes"}


def format_quotation_number(year: int, number: int) -> str:
    return f"{QUOTATION_NUMBER_PREFIX}-{year}-{number:0{QUOTATION_NUMBER_PAD}d}"


def _stage_next_quotation_number(year: int | None = None) -> str:
    """
    Allocate the next number for the year. Must run before anything else is
    staged in the transaction: a lost race on first use of a year rolls
    the session back.
    """
    if year is None:
        year = current_year()

    stmt = (
        update(QuotationNumberSequence)
        .where(QuotationNumberSequence.year == year)
        .values(next_number=QuotationNumberSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        seq = QuotationNumberSequence(year=year, next_number=2)
        db.session.add(seq)
        try:
            db.session.flush()
            return format_quotation_number(year, 1)
        except IntegrityError:
            db.session.rollback()
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    db.session.flush()
    current = (
        db.session.query(QuotationNumberSequence.next_number)
        .filter_by(year=year)
        .scalar()
    )
    return format_quotation_number(year, current - 1)


def _require_machine(machine_id: int) -> Machine:
    machine = db.session.query(Machine).filter_by(id=machine_id, is_active=True).first()
    if not machine:
        raise NotFoundError("Machine not found")
    return machine


def _require_customer(customer_id: int, user_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer or not can_access_customer(customer, user_id):
        raise NotFoundError("Customer not found or access denied")
    return customer


def can_access_quotation(quotation: Quotation, user_id: int) -> bool:
    return quotation.user_id == user_id or is_manager(user_id)


def get_quotation(quotation_id: int, *, user_id: int) -> Quotation:
    quotation = db.session.get(Quotation, quotation_id)
    if not quotation or not can_access_quotation(quotation, user_id):
        raise NotFoundError("Quotation not found")
    return quotation


def list_quotations(
    *,
    user_id: int,
    status: str | None = None,
    customer_id: int | None = None,
    machine_id: int | None = None,
) -> list[Quotation]:
    """Latest versions only, newest first."""
    query = db.session.query(Quotation).filter(Quotation.is_latest_version.is_(True))
    if not is_manager(user_id):
        query = query.filter(Quotation.user_id == user_id)
    if status:
        query = query.filter(Quotation.status == status)
    if customer_id is not None:
        query = query.filter(Quotation.customer_id == customer_id)
    if machine_id is not None:
        query = query.filter(Quotation.machine_id == machine_id)
    return query.order_by(Quotation.created_at.desc(), Quotation.id.desc()).all()


def create_quotation(*, user_id: int, patch: dict) -> Quotation:
    _require_customer(patch["customer_id"], user_id)
    if patch.get("machine_id") is not None:
        _require_machine(patch["machine_id"])

    def _op() -> Quotation:
        with atomic():
            quotation = Quotation(
                quotation_number=_stage_next_quotation_number(),
                title=patch["title"],
                user_id=user_id,
                customer_id=patch["customer_id"],
                machine_id=patch.get("machine_id"),
                status="DRAFT",
                version=1,
                is_latest_version=True,
                version_notes=patch.get("version_notes"),
                currency=patch.get("currency") or current_app.config["DEFAULT_CURRENCY"],
                valid_until=patch.get("valid_until"),
            )
            db.session.add(quotation)
            db.session.flush()
            qc_service._stage_initialization(quotation)
        return quotation

    quotation = run_with_retry(_op)
    current_app.logger.info(
        "Quotation %s (%s) created by user %s", quotation.id, quotation.quotation_number, user_id
    )
    return quotation


def update_quotation(quotation_id: int, *, user_id: int, patch: dict) -> Quotation:
    quotation = get_quotation(quotation_id, user_id=user_id)
    if patch.get("machine_id") is not None:
        _require_machine(patch["machine_id"])

    with atomic():
        had_machine = quotation.machine_id is not None
        for k, v in patch.items():
            if k in QUOTATION_MUTABLE_FIELDS:
                setattr(quotation, k, v)
        db.session.flush()

        if not had_machine and quotation.machine_id is not None:
            added = qc_service._stage_initialization(quotation)
            current_app.logger.info(
                "Machine %s attached to quotation %s (%s rows initialized)",
                quotation.machine_id, quotation.id, added,
            )
    return quotation


def update_status(quotation_id: int, *, user_id: int, status: str) -> Quotation:
    quotation = get_quotation(quotation_id, user_id=user_id)
    quotation.status = status
    db.session.commit()
    current_app.logger.info("Quotation %s status -> %s", quotation.id, status)
    return quotation


def delete_quotation(quotation_id: int, *, user_id: int) -> None:
    """
    Only DRAFT quotations can be deleted. A quotation with successor
    versions cannot be deleted; deleting the latest successor hands the
    latest flag back to its parent.
    """
    quotation = get_quotation(quotation_id, user_id=user_id)

    if quotation.status != "DRAFT":
        raise BadRequestError("Only draft quotations can be deleted")
    if quotation.child_versions:
        raise BadRequestError("Cannot delete a quotation that has newer versions")

    with atomic():
        parent = quotation.parent_quotation
        if parent is not None and quotation.is_latest_version:
            parent.is_latest_version = True
        db.session.delete(quotation)


def create_version(
    parent_quotation_id: int,
    *,
    user_id: int,
    title: str | None = None,
    version_notes: str | None = None,
    valid_until=None,
) -> Quotation:
    parent = get_quotation(parent_quotation_id, user_id=user_id)
    if not parent.is_latest_version:
        raise BadRequestError("Only the latest version of a quotation can be versioned")

    def _op() -> Quotation:
        with atomic():
            number = _stage_next_quotation_number()
            source = db.session.get(Quotation, parent_quotation_id)
            source.is_latest_version = False

            new_version = Quotation(
                quotation_number=number,
                title=title or source.title,
                status="DRAFT",
                version=source.version + 1,
                parent_quotation_id=source.id,
                is_latest_version=True,
                version_notes=version_notes,
                user_id=user_id,
                customer_id=source.customer_id,
                machine_id=source.machine_id,
                currency=source.currency,
                valid_until=valid_until or source.valid_until,
            )
            db.session.add(new_version)
            db.session.flush()
            qc_service._stage_copy(source.id, new_version)
        return new_version

    new_version = run_with_retry(_op)
    current_app.logger.info(
        "Quotation %s version %s created from %s", new_version.id, new_version.version, parent_quotation_id
    )
    return new_version


def get_versions(quotation_id: int, *, user_id: int) -> list[Quotation]:
    """The quotation and its direct successors, highest version first."""
    quotation = get_quotation(quotation_id, user_id=user_id)
    return (
        db.session.query(Quotation)
        .filter(db.or_(Quotation.id == quotation.id, Quotation.parent_quotation_id == quotation.id))
        .order_by(Quotation.version.desc(), Quotation.id.desc())
        .all()
    )


def clone_quotation(quotation_id: int, *, user_id: int, title: str | None = None) -> Quotation:
    original = get_quotation(quotation_id, user_id=user_id)

    def _op() -> Quotation:
        with atomic():
            number = _stage_next_quotation_number()
            source = db.session.get(Quotation, quotation_id)
            clone = Quotation(
                quotation_number=number,
                title=title or f"{source.title} (Copy)",
                status="DRAFT",
                version=1,
                is_latest_version=True,
                user_id=user_id,
                customer_id=source.customer_id,
                machine_id=source.machine_id,
                currency=source.currency,
            )
            db.session.add(clone)
            db.session.flush()
            qc_service._stage_copy(source.id, clone)
        return clone

    clone = run_with_retry(_op)
    current_app.logger.info("Quotation %s cloned into %s", original.id, clone.id)
    return clone


def calculate_price(quotation_id: int, *, user_id: int) -> dict:
    """
    Sum the price modifiers of the selected options over the current rows
    and store the total on the quotation.
    """
    quotation = get_quotation(quotation_id, user_id=user_id)

    total = Decimal("0")
    breakdown = []
    for row in qc_service.get_current_configurations(quotation.id):
        option = row.selected_option
        if option is None or option.price_modifier is None:
            continue
        price = Decimal(option.price_modifier)
        total += price
        breakdown.append({
            "item": f"{row.configuration.name}: {option.display_name}",
            "price": float(price),
            "currency": quotation.currency,
        })

    quotation.total_price = total
    quotation.updated_at = utcnow()
    db.session.commit()

    return {
        "total_price": float(total),
        "currency": quotation.currency,
        "breakdown": breakdown,
    }
