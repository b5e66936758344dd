from __future__ import annotations
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .time_utils import parse_iso_datetime
from .models import (
    CONFIGURATION_TYPES,
    RULE_TYPES,
    QUOTATION_STATUSES,
    Configuration,
    ConfigurationDependency,
    ConfigurationOption,
    ConfigurationTab,
    Customer,
    Machine,
    MachineGroup,
    Quotation,
    QuotationConfiguration,
    TabConfiguration,
    ValidationRule,
)


# Maximum absolute price modifier: 9,999,999,999.99
MAX_PRICE_MODIFIER = Decimal("9999999999.99")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


MACHINE_GROUP_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "color", "icon"},
    required_on_create={"name", "description"},
)

MACHINE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "group_id", "tags"},
    required_on_create={"name", "description"},
)

CONFIGURATION_TAB_POLICY = ModelValidationPolicy(
    writable_fields={"machine_id", "name", "description", "order"},
    required_on_create={"machine_id", "name"},
)

CONFIGURATION_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "help_text", "type", "is_required", "ai_logic_hint"},
    required_on_create={"name", "description", "help_text", "type"},
)

OPTION_POLICY = ModelValidationPolicy(
    writable_fields={"value", "display_name", "description", "price_modifier", "is_default"},
    required_on_create={"value", "display_name"},
)

VALIDATION_RULE_POLICY = ModelValidationPolicy(
    writable_fields={"rule_type", "rule_value", "error_message"},
    required_on_create={"rule_type", "error_message"},
)

DEPENDENCY_POLICY = ModelValidationPolicy(
    writable_fields={"parent_configuration_id", "child_configuration_id", "dependency_type", "condition", "action"},
    required_on_create={"parent_configuration_id", "child_configuration_id"},
)

TAB_CONFIGURATION_POLICY = ModelValidationPolicy(
    writable_fields={"configuration_id", "order", "is_visible", "is_required"},
    required_on_create={"configuration_id"},
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"company_name", "contact_person", "email", "phone", "address", "country", "is_active"},
    required_on_create={"company_name"},
)

QUOTATION_POLICY = ModelValidationPolicy(
    writable_fields={"title", "customer_id", "machine_id", "currency", "valid_until", "version_notes"},
    required_on_create={"title", "customer_id"},
)

QUOTATION_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"title", "machine_id", "status", "total_price", "currency", "valid_until", "version_notes"},
)

QUOTATION_CONFIGURATION_POLICY = ModelValidationPolicy(
    writable_fields={"configuration_id", "selected_option_id", "custom_value", "notes"},
    required_on_create={"configuration_id"},
)

POLICIES = {
    MachineGroup: MACHINE_GROUP_POLICY,
    Machine: MACHINE_POLICY,
    ConfigurationTab: CONFIGURATION_TAB_POLICY,
    Configuration: CONFIGURATION_POLICY,
    ConfigurationOption: OPTION_POLICY,
    ValidationRule: VALIDATION_RULE_POLICY,
    ConfigurationDependency: DEPENDENCY_POLICY,
    TabConfiguration: TAB_CONFIGURATION_POLICY,
    Customer: CUSTOMER_POLICY,
    Quotation: QUOTATION_POLICY,
    QuotationConfiguration: QUOTATION_CONFIGURATION_POLICY,
}


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or not re.fullmatch(r"-?\d+", stripped):
                raise ValidationError(f"{col.key} must be an integer")
            return int(stripped)
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Decimals (prices); floats go through str() to avoid binary noise
    if isinstance(coltype, Numeric):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        try:
            dec = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{col.key} must be a number")
        if not dec.is_finite():
            raise ValidationError(f"{col.key} must be a finite number")
        return dec

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
            return value.strip().lower() in ("true", "1")
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string")
        return str(value).strip()

    # JSON and others: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy | None = None,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if policy is None:
        policy = POLICIES[model]
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


# =============================================================================
# Business rules not captured by column metadata
# =============================================================================

def enforce_rules_machine(patch: dict) -> None:
    if "tags" in patch:
        tags = patch["tags"]
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise ValidationError("tags must be a list of strings")
        patch["tags"] = [t.strip() for t in tags if t.strip()]


def enforce_rules_configuration(patch: dict) -> None:
    if "type" in patch and patch["type"] not in CONFIGURATION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(CONFIGURATION_TYPES)}")


def enforce_rules_option(patch: dict) -> None:
    price = patch.get("price_modifier")
    if price is not None and abs(price) > MAX_PRICE_MODIFIER:
        raise ValidationError(f"price_modifier cannot exceed {MAX_PRICE_MODIFIER}")


def enforce_rules_validation_rule(patch: dict) -> None:
    rule_type = patch.get("rule_type")
    if rule_type is not None and rule_type not in RULE_TYPES:
        raise ValidationError(f"rule_type must be one of: {', '.join(RULE_TYPES)}")

    rule_value = patch.get("rule_value")
    if rule_type in ("MIN_VALUE", "MAX_VALUE"):
        try:
            float(rule_value)
        except (TypeError, ValueError):
            raise ValidationError(f"rule_value must be numeric for {rule_type}")
    if rule_type == "REGEX":
        try:
            re.compile(rule_value or "")
        except re.error:
            raise ValidationError("rule_value must be a valid regular expression")


def enforce_rules_dependency(patch: dict) -> None:
    if patch.get("parent_configuration_id") == patch.get("child_configuration_id"):
        raise ValidationError("A configuration cannot depend on itself")


def enforce_rules_customer(patch: dict) -> None:
    email = patch.get("email")
    if email:
        if not EMAIL_RE.match(email):
            raise ValidationError("email must be a valid e-mail address")
        patch["email"] = email.lower()


def enforce_rules_quotation(patch: dict) -> None:
    if "currency" in patch and patch["currency"] is not None:
        currency = patch["currency"].upper()
        if not CURRENCY_RE.match(currency):
            raise ValidationError("currency must be a 3-letter ISO code")
        patch["currency"] = currency

    if "status" in patch and patch["status"] not in QUOTATION_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(QUOTATION_STATUSES)}")

    total = patch.get("total_price")
    if total is not None and total < 0:
        raise ValidationError("total_price must be >= 0")
