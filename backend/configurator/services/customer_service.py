# Overview: Service-layer operations for customers; ownership-scoped CRUD.

"""
Customer Service

OWNERSHIP: a customer is visible to the users linked to it through
UserCustomer rows. ADMIN and SALES_MANAGER see every customer. A customer
outside the caller's scope is reported as NotFound, exactly like a
customer that does not exist.

The creating user is linked automatically.
"""

from __future__ import annotations

from flask import current_app

from ..errors import BadRequestError, NotFoundError
from ..extensions import db
from ..models import Customer, Quotation, User, UserCustomer
from ..time_utils import to_utc_z
from .role_service import is_manager

CUSTOMER_MUTABLE_FIELDS = {"company_name", "contact_person", "email", "phone", "address", "country", "is_active"}

RECENT_QUOTATION_LIMIT = 10


def _owned_by(user_id: int):
    return Customer.user_customers.any(UserCustomer.user_id == user_id)


def can_access_customer(customer: Customer, user_id: int, manager: bool | None = None) -> bool:
    if manager is None:
        manager = is_manager(user_id)
    if manager:
        return True
    return any(uc.user_id == user_id for uc in customer.user_customers)


def create_customer(*, user_id: int, patch: dict) -> Customer:
    customer = Customer(is_active=True)
    for k, v in patch.items():
        if k in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, k, v)
    customer.user_customers.append(UserCustomer(user_id=user_id))

    db.session.add(customer)
    db.session.commit()
    current_app.logger.info("Customer %s created by user %s", customer.id, user_id)
    return customer


def list_customers(
    *,
    user_id: int,
    search: str | None = None,
    country: str | None = None,
    is_active: bool | None = None,
) -> list[Customer]:
    query = db.session.query(Customer)
    if not is_manager(user_id):
        query = query.filter(_owned_by(user_id))

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Customer.company_name.ilike(pattern),
            Customer.contact_person.ilike(pattern),
        ))
    if country:
        query = query.filter(Customer.country == country)
    if is_active is not None:
        query = query.filter(Customer.is_active.is_(is_active))

    return query.order_by(Customer.company_name.asc(), Customer.id.asc()).all()


def get_customer(customer_id: int, *, user_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer or not can_access_customer(customer, user_id):
        raise NotFoundError("Customer not found")
    return customer


def _serialize_quotation_summary(q: Quotation) -> dict:
    return {
        "id": q.id,
        "quotation_number": q.quotation_number,
        "title": q.title,
        "status": q.status,
        "version": q.version,
        "machine": {"id": q.machine.id, "name": q.machine.name} if q.machine else None,
        "user": {
            "id": q.user.id,
            "first_name": q.user.first_name,
            "last_name": q.user.last_name,
        } if q.user else None,
        "total_price": float(q.total_price) if q.total_price is not None else None,
        "currency": q.currency,
        "configuration_count": len([qc for qc in q.configurations if qc.is_current_version]),
        "created_at": to_utc_z(q.created_at),
    }


def _latest_quotations_query(customer_id: int):
    return (
        db.session.query(Quotation)
        .filter(Quotation.customer_id == customer_id, Quotation.is_latest_version.is_(True))
        .order_by(Quotation.created_at.desc(), Quotation.id.desc())
    )


def get_customer_detail(customer_id: int, *, user_id: int) -> dict:
    """Customer with linked users and its most recent latest-version quotations."""
    customer = get_customer(customer_id, user_id=user_id)
    data = customer.to_dict(include_counts=True)
    data["users"] = [
        {
            "id": uc.user.id,
            "first_name": uc.user.first_name,
            "last_name": uc.user.last_name,
            "email": uc.user.email,
        }
        for uc in customer.user_customers
    ]
    data["quotations"] = [
        _serialize_quotation_summary(q)
        for q in _latest_quotations_query(customer.id).limit(RECENT_QUOTATION_LIMIT).all()
    ]
    return data


def update_customer(customer_id: int, *, user_id: int, patch: dict) -> Customer:
    customer = get_customer(customer_id, user_id=user_id)
    for k, v in patch.items():
        if k in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, k, v)
    db.session.commit()
    return customer


def delete_customer(customer_id: int, *, user_id: int) -> None:
    customer = get_customer(customer_id, user_id=user_id)

    count = db.session.query(Quotation).filter_by(customer_id=customer.id).count()
    if count > 0:
        raise BadRequestError("Cannot delete customer with existing quotations")

    db.session.delete(customer)
    db.session.commit()
    current_app.logger.info("Customer %s deleted by user %s", customer_id, user_id)


def get_customer_quotations(customer_id: int, *, user_id: int) -> list[dict]:
    customer = get_customer(customer_id, user_id=user_id)
    return [_serialize_quotation_summary(q) for q in _latest_quotations_query(customer.id).all()]


def assign_user(customer_id: int, *, user_id: int, assignee_id: int) -> Customer:
    """Link another user to the customer (idempotent)."""
    customer = get_customer(customer_id, user_id=user_id)
    assignee = db.session.get(User, assignee_id)
    if not assignee or not assignee.is_active:
        raise NotFoundError(f"User with ID {assignee_id} not found")

    if not any(uc.user_id == assignee_id for uc in customer.user_customers):
        customer.user_customers.append(UserCustomer(user_id=assignee_id))
        db.session.commit()
    return customer


def unassign_user(customer_id: int, *, user_id: int, assignee_id: int) -> Customer:
    customer = get_customer(customer_id, user_id=user_id)
    link = next((uc for uc in customer.user_customers if uc.user_id == assignee_id), None)
    if not link:
        raise NotFoundError(f"User {assignee_id} is not assigned to this customer")
    customer.user_customers.remove(link)
    db.session.commit()
    return customer
