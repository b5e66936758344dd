# Overview: Flask API routes for configuration tab operations; parses input and returns JSON responses.

"""
Configuration tab routes, including placement of configurations on tabs.

SECURITY: All routes require authentication.
- Reads require any reader role
- Changes require ADMIN
"""

from flask import Blueprint, request

from ..errors import ServiceError
from ..models import ConfigurationTab, TabConfiguration
from ..services import configuration_tab_service
from ..validation import validate_payload, ValidationError
from ..decorators import require_auth, require_roles, ADMIN_ROLES, READ_ROLES

configuration_tabs_bp = Blueprint("configuration_tabs", __name__, url_prefix="/api/configuration-tabs")


@configuration_tabs_bp.get("")
@require_auth
@require_roles(*READ_ROLES)
def list_tabs():
    """Query params: machine_id (int)."""
    machine_id = request.args.get("machine_id", type=int)
    tabs = configuration_tab_service.list_tabs(machine_id=machine_id)
    return {"items": [t.to_dict() for t in tabs], "count": len(tabs)}


@configuration_tabs_bp.post("")
@require_auth
@require_roles(*ADMIN_ROLES)
def create_tab():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=ConfigurationTab, payload=payload, partial=False)
        tab = configuration_tab_service.create_tab(patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return tab.to_dict(), 201


@configuration_tabs_bp.get("/<int:tab_id>")
@require_auth
@require_roles(*READ_ROLES)
def get_tab(tab_id: int):
    try:
        tab = configuration_tab_service.get_tab(tab_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return tab.to_dict()


@configuration_tabs_bp.get("/<int:tab_id>/configurations")
@require_auth
@require_roles(*READ_ROLES)
def get_tab_configurations(tab_id: int):
    try:
        return configuration_tab_service.get_tab_configurations(tab_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code


@configuration_tabs_bp.put("/<int:tab_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def update_tab(tab_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=ConfigurationTab, payload=payload, partial=True)
        tab = configuration_tab_service.update_tab(tab_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return tab.to_dict()


@configuration_tabs_bp.delete("/<int:tab_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def delete_tab(tab_id: int):
    try:
        configuration_tab_service.delete_tab(tab_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return {"ok": True}, 200


@configuration_tabs_bp.post("/<int:tab_id>/configurations")
@require_auth
@require_roles(*ADMIN_ROLES)
def add_configuration_to_tab(tab_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=TabConfiguration, payload=payload, partial=False)
        placement = configuration_tab_service.add_configuration_to_tab(tab_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return placement.to_dict(include_configuration=True), 201


@configuration_tabs_bp.put("/<int:tab_id>/configurations/<int:configuration_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def update_tab_configuration(tab_id: int, configuration_id: int):
    payload = request.get_json(silent=True) or {}
    if isinstance(payload, dict):
        payload.pop("configuration_id", None)
    try:
        patch = validate_payload(model=TabConfiguration, payload=payload, partial=True)
        placement = configuration_tab_service.update_tab_configuration(tab_id, configuration_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return placement.to_dict(include_configuration=True)


@configuration_tabs_bp.delete("/<int:tab_id>/configurations/<int:configuration_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def remove_configuration_from_tab(tab_id: int, configuration_id: int):
    try:
        configuration_tab_service.remove_configuration_from_tab(tab_id, configuration_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return {"ok": True}, 200
