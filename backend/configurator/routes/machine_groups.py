# Overview: Flask API routes for machine group operations; parses input and returns JSON responses.

"""
Machine group routes.

SECURITY: All routes require authentication.
- Read operations require any catalog reader role
- Create/update/delete require ADMIN
"""

from flask import Blueprint, request

from ..errors import ServiceError
from ..models import MachineGroup
from ..services import machine_group_service
from ..validation import validate_payload, ValidationError
from ..decorators import require_auth, require_roles, ADMIN_ROLES, READ_ROLES

machine_groups_bp = Blueprint("machine_groups", __name__, url_prefix="/api/machine-groups")


@machine_groups_bp.get("")
@require_auth
@require_roles(*READ_ROLES)
def list_machine_groups():
    groups = machine_group_service.list_machine_groups()
    return {"items": [mg.to_dict(include_machines=True) for mg in groups], "count": len(groups)}


@machine_groups_bp.post("")
@require_auth
@require_roles(*ADMIN_ROLES)
def create_machine_group():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=MachineGroup, payload=payload, partial=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    group = machine_group_service.create_machine_group(patch=patch)
    return group.to_dict(include_machines=True), 201


@machine_groups_bp.get("/<int:group_id>")
@require_auth
@require_roles(*READ_ROLES)
def get_machine_group(group_id: int):
    try:
        group = machine_group_service.get_machine_group(group_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return group.to_dict(include_machines=True)


@machine_groups_bp.put("/<int:group_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def update_machine_group(group_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=MachineGroup, payload=payload, partial=True)
        group = machine_group_service.update_machine_group(group_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return group.to_dict(include_machines=True)


@machine_groups_bp.delete("/<int:group_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def delete_machine_group(group_id: int):
    try:
        machine_group_service.delete_machine_group(group_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return {"ok": True}, 200
