# Overview: Flask API routes for configuration operations; parses input and returns JSON responses.

"""
Configuration routes: field definitions, their options, validation rules
and dependency edges, plus the validation endpoint.

SECURITY: All routes require authentication.
- Reads require any reader role
- POST /validate requires a writer role
- Definition, option, rule and dependency changes require ADMIN
"""

from flask import Blueprint, request

from ..errors import ServiceError
from ..models import (
    CONFIGURATION_TYPES,
    Configuration,
    ConfigurationDependency,
    ConfigurationOption,
    ValidationRule,
)
from ..services import configuration_service
from ..validation import (
    validate_payload,
    enforce_rules_configuration,
    enforce_rules_dependency,
    enforce_rules_option,
    enforce_rules_validation_rule,
    ValidationError,
)
from ..decorators import require_auth, require_roles, ADMIN_ROLES, READ_ROLES, WRITE_ROLES

configurations_bp = Blueprint("configurations", __name__, url_prefix="/api/configurations")


@configurations_bp.get("")
@require_auth
@require_roles(*READ_ROLES)
def list_configurations():
    """Query params: type (one of the configuration types)."""
    config_type = request.args.get("type")
    if config_type and config_type not in CONFIGURATION_TYPES:
        return {"error": f"type must be one of: {', '.join(CONFIGURATION_TYPES)}"}, 400

    configurations = configuration_service.list_configurations(config_type)
    return {"items": [c.to_dict() for c in configurations], "count": len(configurations)}


@configurations_bp.post("")
@require_auth
@require_roles(*ADMIN_ROLES)
def create_configuration():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Configuration, payload=payload, partial=False)
        enforce_rules_configuration(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    configuration = configuration_service.create_configuration(patch=patch)
    return configuration.to_dict(), 201


@configurations_bp.post("/validate")
@require_auth
@require_roles(*WRITE_ROLES)
def validate_configuration():
    """
    Request body: {"configuration_id": int, "value": any}

    Always 200 for an existing configuration; the verdict is in is_valid.
    """
    data = request.get_json(silent=True) or {}
    configuration_id = data.get("configuration_id")
    if not isinstance(configuration_id, int) or isinstance(configuration_id, bool):
        return {"error": "configuration_id must be an integer"}, 400

    try:
        return configuration_service.validate_configuration(configuration_id, data.get("value"))
    except ServiceError as e:
        return {"error": str(e)}, e.status_code


@configurations_bp.get("/<int:configuration_id>")
@require_auth
@require_roles(*READ_ROLES)
def get_configuration(configuration_id: int):
    try:
        configuration = configuration_service.get_configuration(configuration_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return configuration.to_dict()


@configurations_bp.put("/<int:configuration_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def update_configuration(configuration_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Configuration, payload=payload, partial=True)
        enforce_rules_configuration(patch)
        configuration = configuration_service.update_configuration(configuration_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return configuration.to_dict()


@configurations_bp.delete("/<int:configuration_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def delete_configuration(configuration_id: int):
    try:
        configuration_service.delete_configuration(configuration_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return {"ok": True}, 200


# =============================================================================
# Options
# =============================================================================

@configurations_bp.post("/<int:configuration_id>/options")
@require_auth
@require_roles(*ADMIN_ROLES)
def add_option(configuration_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=ConfigurationOption, payload=payload, partial=False)
        enforce_rules_option(patch)
        option = configuration_service.add_option(configuration_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return option.to_dict(), 201


@configurations_bp.put("/<int:configuration_id>/options/<int:option_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def update_option(configuration_id: int, option_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=ConfigurationOption, payload=payload, partial=True)
        enforce_rules_option(patch)
        option = configuration_service.update_option(configuration_id, option_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return option.to_dict()


@configurations_bp.delete("/<int:configuration_id>/options/<int:option_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def deactivate_option(configuration_id: int, option_id: int):
    try:
        configuration_service.deactivate_option(configuration_id, option_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return {"ok": True}, 200


# =============================================================================
# Validation rules
# =============================================================================

@configurations_bp.post("/<int:configuration_id>/rules")
@require_auth
@require_roles(*ADMIN_ROLES)
def add_validation_rule(configuration_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=ValidationRule, payload=payload, partial=False)
        enforce_rules_validation_rule(patch)
        rule = configuration_service.add_validation_rule(configuration_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return rule.to_dict(), 201


@configurations_bp.delete("/<int:configuration_id>/rules/<int:rule_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def deactivate_validation_rule(configuration_id: int, rule_id: int):
    try:
        configuration_service.deactivate_validation_rule(configuration_id, rule_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return {"ok": True}, 200


# =============================================================================
# Dependencies
# =============================================================================

@configurations_bp.get("/<int:configuration_id>/dependencies")
@require_auth
@require_roles(*READ_ROLES)
def get_dependencies(configuration_id: int):
    try:
        return configuration_service.get_dependencies(configuration_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code


@configurations_bp.post("/dependencies")
@require_auth
@require_roles(*ADMIN_ROLES)
def add_dependency():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=ConfigurationDependency, payload=payload, partial=False)
        enforce_rules_dependency(patch)
        dependency = configuration_service.add_dependency(patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return dependency.to_dict(), 201


@configurations_bp.delete("/dependencies/<int:dependency_id>")
@require_auth
@require_roles(*ADMIN_ROLES)
def delete_dependency(dependency_id: int):
    try:
        configuration_service.delete_dependency(dependency_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return {"ok": True}, 200
