# Overview: Service-layer operations for configurations, their options, rules and dependencies; hosts the validation engine.

"""
Configuration Service

Configurations are typed field definitions shared across machines. Each
owns options (for choice types), validation rules and dependency edges.

VALIDATION ENGINE: evaluate_configuration(configuration, value) is pure.
It checks, in order:
1. required (None, "" and [] count as empty; does not short-circuit)
2. each active rule: MIN_VALUE / MAX_VALUE (inclusive bounds, numeric),
   REGEX (search against the string form), CUSTOM (warning only)
3. choice membership for SINGLE_CHOICE / MULTIPLE_CHOICE

The result is {"is_valid", "errors", "warnings"}; warnings never affect
validity. Dependencies are exposed as data and are not evaluated.
"""

from __future__ import annotations

import re

from ..errors import BadRequestError, ConflictError, NotFoundError
from ..extensions import db
from ..models import (
    CHOICE_TYPES,
    Configuration,
    ConfigurationDependency,
    ConfigurationOption,
    TabConfiguration,
    ValidationRule,
)

CONFIGURATION_MUTABLE_FIELDS = {"name", "description", "help_text", "type", "is_required", "ai_logic_hint"}
OPTION_MUTABLE_FIELDS = {"value", "display_name", "description", "price_modifier", "is_default"}


def create_configuration(*, patch: dict) -> Configuration:
    configuration = Configuration(is_active=True, is_required=False)
    for k, v in patch.items():
        if k in CONFIGURATION_MUTABLE_FIELDS:
            setattr(configuration, k, v)
    db.session.add(configuration)
    db.session.commit()
    return configuration


def list_configurations(config_type: str | None = None) -> list[Configuration]:
    query = db.session.query(Configuration).filter(Configuration.is_active.is_(True))
    if config_type:
        query = query.filter(Configuration.type == config_type)
    return query.order_by(Configuration.name.asc(), Configuration.id.asc()).all()


def get_configuration(configuration_id: int) -> Configuration:
    configuration = db.session.query(Configuration).filter_by(id=configuration_id, is_active=True).first()
    if not configuration:
        raise NotFoundError(f"Configuration with ID {configuration_id} not found")
    return configuration


def update_configuration(configuration_id: int, *, patch: dict) -> Configuration:
    configuration = get_configuration(configuration_id)
    for k, v in patch.items():
        if k in CONFIGURATION_MUTABLE_FIELDS:
            setattr(configuration, k, v)
    db.session.commit()
    return configuration


def delete_configuration(configuration_id: int) -> None:
    configuration = get_configuration(configuration_id)

    usage = db.session.query(TabConfiguration).filter_by(configuration_id=configuration_id).count()
    if usage > 0:
        raise BadRequestError(
            f"Cannot delete configuration {configuration_id} as it is still used in {usage} tab(s). "
            "Remove it from all tabs first."
        )

    configuration.is_active = False
    db.session.commit()


# =============================================================================
# Options
# =============================================================================

def add_option(configuration_id: int, *, patch: dict) -> ConfigurationOption:
    configuration = get_configuration(configuration_id)

    duplicate = db.session.query(ConfigurationOption).filter_by(
        configuration_id=configuration.id, value=patch["value"]
    ).first()
    if duplicate:
        raise ConflictError(f"Option '{patch['value']}' already exists for configuration '{configuration.name}'")

    option = ConfigurationOption(configuration_id=configuration.id, is_active=True, is_default=False)
    for k, v in patch.items():
        if k in OPTION_MUTABLE_FIELDS:
            setattr(option, k, v)
    db.session.add(option)
    db.session.commit()
    return option


def get_option(configuration_id: int, option_id: int) -> ConfigurationOption:
    option = db.session.query(ConfigurationOption).filter_by(
        id=option_id, configuration_id=configuration_id
    ).first()
    if not option:
        raise NotFoundError(f"Option with ID {option_id} not found for configuration {configuration_id}")
    return option


def update_option(configuration_id: int, option_id: int, *, patch: dict) -> ConfigurationOption:
    get_configuration(configuration_id)
    option = get_option(configuration_id, option_id)

    if "value" in patch and patch["value"] != option.value:
        duplicate = db.session.query(ConfigurationOption).filter_by(
            configuration_id=configuration_id, value=patch["value"]
        ).first()
        if duplicate:
            raise ConflictError(f"Option '{patch['value']}' already exists")

    for k, v in patch.items():
        if k in OPTION_MUTABLE_FIELDS:
            setattr(option, k, v)
    db.session.commit()
    return option


def deactivate_option(configuration_id: int, option_id: int) -> None:
    """Options stay referenced by historical quotation rows; never deleted."""
    get_configuration(configuration_id)
    option = get_option(configuration_id, option_id)
    option.is_active = False
    db.session.commit()


# =============================================================================
# Validation rules
# =============================================================================

def add_validation_rule(configuration_id: int, *, patch: dict) -> ValidationRule:
    configuration = get_configuration(configuration_id)
    rule = ValidationRule(
        configuration_id=configuration.id,
        rule_type=patch["rule_type"],
        rule_value=patch.get("rule_value"),
        error_message=patch["error_message"],
        is_active=True,
    )
    db.session.add(rule)
    db.session.commit()
    return rule


def deactivate_validation_rule(configuration_id: int, rule_id: int) -> None:
    get_configuration(configuration_id)
    rule = db.session.query(ValidationRule).filter_by(id=rule_id, configuration_id=configuration_id).first()
    if not rule:
        raise NotFoundError(f"Validation rule with ID {rule_id} not found for configuration {configuration_id}")
    rule.is_active = False
    db.session.commit()


# =============================================================================
# Dependencies (data only)
# =============================================================================

def add_dependency(*, patch: dict) -> ConfigurationDependency:
    parent = get_configuration(patch["parent_configuration_id"])
    child = get_configuration(patch["child_configuration_id"])

    existing = db.session.query(ConfigurationDependency).filter_by(
        parent_configuration_id=parent.id, child_configuration_id=child.id
    ).first()
    if existing:
        raise ConflictError(f"Dependency {parent.id} -> {child.id} already exists")

    dependency = ConfigurationDependency(
        parent_configuration_id=parent.id,
        child_configuration_id=child.id,
        dependency_type=patch.get("dependency_type"),
        condition=patch.get("condition"),
        action=patch.get("action"),
    )
    db.session.add(dependency)
    db.session.commit()
    return dependency


def delete_dependency(dependency_id: int) -> None:
    dependency = db.session.get(ConfigurationDependency, dependency_id)
    if not dependency:
        raise NotFoundError(f"Dependency with ID {dependency_id} not found")
    db.session.delete(dependency)
    db.session.commit()


def get_dependencies(configuration_id: int) -> dict:
    """
    parent_dependencies: edges where this configuration is the child.
    child_dependencies: edges where it is the parent.
    """
    configuration = get_configuration(configuration_id)

    parents = []
    for dep in configuration.parent_dependencies:
        data = dep.to_dict()
        data["parent_configuration"] = dep.parent_configuration.to_dict(include_options=True)
        parents.append(data)

    children = []
    for dep in configuration.child_dependencies:
        data = dep.to_dict()
        data["child_configuration"] = dep.child_configuration.to_dict(include_options=True)
        children.append(data)

    return {"parent_dependencies": parents, "child_dependencies": children}


# =============================================================================
# Validation engine
# =============================================================================

def is_empty_value(value) -> bool:
    return value is None or value == "" or value == []


def _as_text(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_as_text(v) for v in value)
    return str(value)


def _as_number(value) -> float | None:
    """Numeric coercion; None when the value has no numeric reading."""
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    return number


def _choice_tokens(config_type: str, value) -> list[str]:
    if config_type == "MULTIPLE_CHOICE":
        if isinstance(value, (list, tuple)):
            return [_as_text(v).strip() for v in value]
        return [token.strip() for token in _as_text(value).split(",")]
    return [_as_text(value)]


def evaluate_configuration(configuration: Configuration, value) -> dict:
    errors: list[str] = []
    warnings: list[str] = []
    empty = is_empty_value(value)

    if configuration.is_required and empty:
        errors.append(f"Configuration '{configuration.name}' is required")

    for rule in configuration.validation_rules:
        if not rule.is_active:
            continue

        if rule.rule_type in ("MIN_VALUE", "MAX_VALUE"):
            if empty:
                continue
            number = _as_number(value)
            bound = _as_number(rule.rule_value)
            if number is None or bound is None:
                continue
            if rule.rule_type == "MIN_VALUE" and number < bound:
                errors.append(rule.error_message)
            elif rule.rule_type == "MAX_VALUE" and number > bound:
                errors.append(rule.error_message)

        elif rule.rule_type == "REGEX":
            if empty or not rule.rule_value:
                continue
            try:
                matched = re.search(rule.rule_value, _as_text(value))
            except re.error:
                warnings.append(f"Invalid pattern in validation rule {rule.id} for '{configuration.name}'")
                continue
            if not matched:
                errors.append(rule.error_message)

        elif rule.rule_type == "CUSTOM":
            warnings.append(f"Custom validation for '{configuration.name}' not implemented")

    if configuration.type in CHOICE_TYPES and not empty:
        valid_values = {option.value for option in configuration.options if option.is_active}
        for token in _choice_tokens(configuration.type, value):
            if token and token not in valid_values:
                errors.append(f"Invalid option '{token}' for configuration '{configuration.name}'")

    return {
        "is_valid": not errors,
        "errors": errors,
        "warnings": warnings,
    }


def validate_configuration(configuration_id: int, value) -> dict:
    return evaluate_configuration(get_configuration(configuration_id), value)
