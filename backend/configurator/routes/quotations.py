# Overview: Flask API routes for quotation operations; parses input and returns JSON responses.

"""
Quotation routes, including the versioned configuration sub-resource.

SECURITY: All routes require authentication.
- Reads require any reader role
- Changes require a writer role
- Delete requires ADMIN or SALES_MANAGER

Quotations are visible to their owner; ADMIN and SALES_MANAGER see all.
Quotations outside the caller's scope answer 404.
"""

from flask import Blueprint, request, g, current_app

from ..errors import ServiceError
from ..models import Quotation, QuotationConfiguration, QUOTATION_STATUSES
from ..services import quotation_service
from ..services import quotation_configuration_service as qc_service
from ..time_utils import parse_iso_datetime
from ..validation import (
    validate_payload,
    enforce_rules_quotation,
    ValidationError,
    QUOTATION_POLICY,
    QUOTATION_UPDATE_POLICY,
)
from ..decorators import require_auth, require_roles, DELETE_ROLES, READ_ROLES, WRITE_ROLES

quotations_bp = Blueprint("quotations", __name__, url_prefix="/api/quotations")


def _optional_datetime(data: dict, key: str):
    raw = data.get(key)
    if raw is None or raw == "":
        return None
    try:
        return parse_iso_datetime(str(raw))
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")


@quotations_bp.get("")
@require_auth
@require_roles(*READ_ROLES)
def list_quotations():
    """
    Latest versions only, newest first.

    Query params: status, customer_id, machine_id
    """
    status = request.args.get("status")
    if status and status not in QUOTATION_STATUSES:
        return {"error": f"status must be one of: {', '.join(QUOTATION_STATUSES)}"}, 400

    quotations = quotation_service.list_quotations(
        user_id=g.current_user.id,
        status=status,
        customer_id=request.args.get("customer_id", type=int),
        machine_id=request.args.get("machine_id", type=int),
    )
    return {"items": [q.to_dict() for q in quotations], "count": len(quotations)}


@quotations_bp.post("")
@require_auth
@require_roles(*WRITE_ROLES)
def create_quotation():
    """
    Request body:
    - title: str (required)
    - customer_id: int (required)
    - machine_id: int (optional; configuration rows are initialized for it)
    - currency: 3-letter code (optional, default DEFAULT_CURRENCY)
    - valid_until: ISO-8601 (optional)
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Quotation, payload=payload, policy=QUOTATION_POLICY, partial=False)
        enforce_rules_quotation(patch)
        quotation = quotation_service.create_quotation(user_id=g.current_user.id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return quotation.to_dict(include_configurations=True), 201


@quotations_bp.get("/<int:quotation_id>")
@require_auth
@require_roles(*READ_ROLES)
def get_quotation(quotation_id: int):
    try:
        quotation = quotation_service.get_quotation(quotation_id, user_id=g.current_user.id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return quotation.to_dict(include_configurations=True)


@quotations_bp.put("/<int:quotation_id>")
@require_auth
@require_roles(*WRITE_ROLES)
def update_quotation(quotation_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Quotation, payload=payload, policy=QUOTATION_UPDATE_POLICY, partial=True)
        enforce_rules_quotation(patch)
        quotation = quotation_service.update_quotation(quotation_id, user_id=g.current_user.id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return quotation.to_dict(include_configurations=True)


@quotations_bp.delete("/<int:quotation_id>")
@require_auth
@require_roles(*DELETE_ROLES)
def delete_quotation(quotation_id: int):
    try:
        quotation_service.delete_quotation(quotation_id, user_id=g.current_user.id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return {"ok": True}, 200


@quotations_bp.patch("/<int:quotation_id>/status")
@require_auth
@require_roles(*WRITE_ROLES)
def update_status(quotation_id: int):
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if status not in QUOTATION_STATUSES:
        return {"error": f"status must be one of: {', '.join(QUOTATION_STATUSES)}"}, 400

    try:
        quotation = quotation_service.update_status(quotation_id, user_id=g.current_user.id, status=status)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return quotation.to_dict()


# =============================================================================
# Versions
# =============================================================================

@quotations_bp.post("/<int:quotation_id>/versions")
@require_auth
@require_roles(*WRITE_ROLES)
def create_version(quotation_id: int):
    """Request body (optional): title, version_notes, valid_until"""
    data = request.get_json(silent=True) or {}
    try:
        valid_until = _optional_datetime(data, "valid_until")
        new_version = quotation_service.create_version(
            quotation_id,
            user_id=g.current_user.id,
            title=data.get("title"),
            version_notes=data.get("version_notes"),
            valid_until=valid_until,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return new_version.to_dict(include_configurations=True), 201


@quotations_bp.get("/<int:quotation_id>/versions")
@require_auth
@require_roles(*READ_ROLES)
def get_versions(quotation_id: int):
    try:
        versions = quotation_service.get_versions(quotation_id, user_id=g.current_user.id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return {"items": [q.to_dict() for q in versions], "count": len(versions)}


@quotations_bp.post("/<int:quotation_id>/clone")
@require_auth
@require_roles(*WRITE_ROLES)
def clone_quotation(quotation_id: int):
    data = request.get_json(silent=True) or {}
    try:
        clone = quotation_service.clone_quotation(
            quotation_id, user_id=g.current_user.id, title=data.get("title")
        )
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return clone.to_dict(include_configurations=True), 201


@quotations_bp.post("/<int:quotation_id>/calculate-price")
@require_auth
@require_roles(*WRITE_ROLES)
def calculate_price(quotation_id: int):
    try:
        return quotation_service.calculate_price(quotation_id, user_id=g.current_user.id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code


# =============================================================================
# Configurations (versioned)
# =============================================================================

@quotations_bp.get("/<int:quotation_id>/configurations")
@require_auth
@require_roles(*READ_ROLES)
def list_configurations(quotation_id: int):
    """Current rows only."""
    try:
        quotation = quotation_service.get_quotation(quotation_id, user_id=g.current_user.id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    rows = qc_service.get_current_configurations(quotation.id)
    return {"items": [row.to_dict() for row in rows], "count": len(rows)}


@quotations_bp.get("/<int:quotation_id>/configurations/<int:configuration_id>/history")
@require_auth
@require_roles(*READ_ROLES)
def configuration_history(quotation_id: int, configuration_id: int):
    """Every version of one configuration's value, oldest first."""
    try:
        quotation = quotation_service.get_quotation(quotation_id, user_id=g.current_user.id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    rows = qc_service.get_configuration_history(quotation.id, configuration_id)
    return {"items": [row.to_dict() for row in rows], "count": len(rows)}


@quotations_bp.post("/<int:quotation_id>/configurations")
@require_auth
@require_roles(*WRITE_ROLES)
def save_configuration(quotation_id: int):
    """
    Create-or-update the value of one configuration.

    Request body: configuration_id (required), selected_option_id,
    custom_value, notes. An unchanged write returns the current row.
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=QuotationConfiguration, payload=payload, partial=False)
        quotation = quotation_service.get_quotation(quotation_id, user_id=g.current_user.id)
        row = qc_service.save_configuration(
            quotation,
            patch["configuration_id"],
            selected_option_id=patch.get("selected_option_id"),
            custom_value=patch.get("custom_value"),
            notes=patch.get("notes"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return row.to_dict(), 200


@quotations_bp.put("/<int:quotation_id>/configurations/<int:configuration_id>")
@require_auth
@require_roles(*WRITE_ROLES)
def update_configuration(quotation_id: int, configuration_id: int):
    """Partial update of the current row; omitted fields are kept."""
    payload = request.get_json(silent=True) or {}
    if isinstance(payload, dict):
        payload.pop("configuration_id", None)
    try:
        patch = validate_payload(model=QuotationConfiguration, payload=payload, partial=True)
        quotation = quotation_service.get_quotation(quotation_id, user_id=g.current_user.id)
        row = qc_service.update_configuration(quotation, configuration_id, **patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    return row.to_dict(), 200


@quotations_bp.delete("/<int:quotation_id>/configurations/<int:configuration_id>")
@require_auth
@require_roles(*WRITE_ROLES)
def remove_configuration(quotation_id: int, configuration_id: int):
    """Clears the value as a new version; history is kept."""
    try:
        quotation = quotation_service.get_quotation(quotation_id, user_id=g.current_user.id)
        row = qc_service.remove_configuration(quotation, configuration_id)
    except ServiceError as e:
        return {"error": str(e)}, e.status_code
    current_app.logger.debug("Cleared configuration %s on quotation %s", configuration_id, quotation_id)
    return row.to_dict(), 200
