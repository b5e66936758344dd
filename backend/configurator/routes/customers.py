# Overview: Flask API routes for customer operations; parses input and returns JSON responses.

"""
Customer routes.

SECURITY: All routes require authentication.
- Reads require any reader role
- Create/update require a writer role
- Delete requires ADMIN or SALES_MANAGER

Customers are visible to their assigned users; ADMIN and SALES_MANAGER see
all. Customers outside the caller's scope answer 404.
"""

from flask import Blueprint, request, g

from ..errors import ServiceError
from ..models import Customer
from ..services import customer_service
from ..validation import validate_payload, enforce_rules_customer, ValidationError
from ..decorators import require_auth, require_roles, DELETE_ROLES, READ_ROLES, WRITE_ROLES

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _parse_bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.lower() in ("true", "1", "yes")


@customers_bp.get("")
@require_auth
@require_roles(*READ_ROLES)
def list_customers():
    """
    Query params:
    - search: matches company name or contact person (case-insensitive)
    - country: exact match
    - is_active: true/false
    """
    customers = customer_service.list_customers(
        user_id=g.current_user.id,
        search=request.args.get("search"),
        country=request.args.get("country"),
        is_active=_parse_bool_arg("is_active"),
    )
    return {"items": [c.to_dict(include_counts=True) for c in customers], "count": len(customers)}


@customers_bp.post("")
@require_auth
@require_roles(*WRITE_ROLES)
def create_customer():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, partial=False)
        enforce_rules_customer(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    customer = customer_service.create_customer(user_id=g.current_user.id, patch=patch)
    return customer.to_dict(include_counts=True), 201


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_roles(*READ_ROLES)
def get_customer(customer_id: int):
    try:
        return customer_service.get_customer_detail(customer_id, user_id=g.current_user.id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_roles(*WRITE_ROLES)
def update_customer(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, partial=True)
        enforce_rules_customer(patch)
        customer = customer_service.update_customer(customer_id, user_id=g.current_user.id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return customer.to_dict(include_counts=True)


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_roles(*DELETE_ROLES)
def delete_customer(customer_id: int):
    try:
        customer_service.delete_customer(customer_id, user_id=g.current_user.id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return {"ok": True}, 200


@customers_bp.get("/<int:customer_id>/quotations")
@require_auth
@require_roles(*READ_ROLES)
def get_customer_quotations(customer_id: int):
    try:
        items = customer_service.get_customer_quotations(customer_id, user_id=g.current_user.id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return {"items": items, "count": len(items)}


@customers_bp.post("/<int:customer_id>/users")
@require_auth
@require_roles(*DELETE_ROLES)
def assign_user(customer_id: int):
    """Request body: {"user_id": int}"""
    data = request.get_json(silent=True) or {}
    assignee_id = data.get("user_id")
    if not isinstance(assignee_id, int) or isinstance(assignee_id, bool):
        return {"error": "user_id must be an integer"}, 400
    try:
        customer = customer_service.assign_user(customer_id, user_id=g.current_user.id, assignee_id=assignee_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return customer.to_dict(include_counts=True)


@customers_bp.delete("/<int:customer_id>/users/<int:assignee_id>")
@require_auth
@require_roles(*DELETE_ROLES)
def unassign_user(customer_id: int, assignee_id: int):
    try:
        customer = customer_service.unassign_user(customer_id, user_id=g.current_user.id, assignee_id=assignee_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return customer.to_dict(include_counts=True)
