# Overview: Flask API routes for machine operations; parses input and returns JSON responses.

"""
Machine routes.

SECURITY: All routes require authentication.
- Read operations (list, get, full configuration view) require any reader role
- Create/update/delete require ADMIN

Query params for list:
- group_id: int
- tags: comma separated; a machine matches when it carries any of them
"""

from flask import Blueprint, request

from ..errors import ServiceError
from ..models import Machine
from ..services import machine_service
from ..validation import validate_payload, enforce_rules_machine, ValidationError
from ..decorators import require_auth, require_roles, ADMIN_ROLES, READ_ROLES

machines_bp = Blueprint("machines", __name__, url_prefix="/api/machines")


@machines_bp.get("")
@require_auth
@require_roles(*READ_ROLES)
def list_machines():
    group_id = request.args.get("group_id", type=int)
    raw_tags = request.args.get("tags")
    tags = [t.strip() for t in raw_tags.split(",") if t.strip()] if raw_tags else None

    machines = machine_service.list_machines(group_id=group_id, tags=tags)
    return {"items": [m.to_dict() for m in machines], "count": len(machines)}


@machines_bp.post("")
@require_auth
@require_roles(*ADMIN_ROLES)
def create_machine():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Machine, payload=payload, partial=False)
        enforce_rules_machine(patch)
        machine = machine_service.create_machine(patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return machine.to_dict(), 201


@machines_bp.get("/<int:machine_id>")
@require_auth
@require_roles(*READ_ROLES)
def get_machine(machine_id: int):
    try:
        machine = machine_service.get_machine(machine_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return machine.to_dict()


@machines_bp.get("/<int:machine_id>/configuration")
@require_auth
@require_roles(*READ_ROLES)
def get_machine_configuration(machine_id: int):
    """Machine with tabs, placements, configurations, options and rules."""
    try:
        return machine_service.get_machine_with_configuration(machine_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code


@machines_bp.put("/<int:machine_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def update_machine(machine_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Machine, payload=payload, partial=True)
        enforce_rules_machine(patch)
        machine = machine_service.update_machine(machine_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return machine.to_dict()


@machines_bp.delete("/<int:machine_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def delete_machine(machine_id: int):
    try:
        machine_service.delete_machine(machine_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return {"ok": True}, 200
