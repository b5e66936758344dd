# Overview: Service-layer operations for configuration tabs and the placement of configurations on them.

"""
Configuration Tab Service

Tabs are ordered per machine. A tab places configurations through
TabConfiguration rows, each with its own order, visibility and optional
required-override.

RULES:
- A tab can only be created for an active machine (BadRequest otherwise)
- order defaults to (highest order on the machine) + 1
- Deleting is a soft delete and is refused while placements remain
"""

from __future__ import annotations

from sqlalchemy import func

from ..errors import BadRequestError, ConflictError, NotFoundError
from ..extensions import db
from ..models import Configuration, ConfigurationTab, Machine, TabConfiguration

TAB_MUTABLE_FIELDS = {"name", "description", "order"}
PLACEMENT_MUTABLE_FIELDS = {"order", "is_visible", "is_required"}


def _next_tab_order(machine_id: int) -> int:
    current = db.session.query(func.max(ConfigurationTab.order)).filter(
        ConfigurationTab.machine_id == machine_id
    ).scalar()
    return (current or 0) + 1


def _next_placement_order(tab_id: int) -> int:
    current = db.session.query(func.max(TabConfiguration.order)).filter(
        TabConfiguration.tab_id == tab_id
    ).scalar()
    return (current or 0) + 1


def create_tab(*, patch: dict) -> ConfigurationTab:
    machine_id = patch["machine_id"]
    machine = db.session.query(Machine).filter_by(id=machine_id, is_active=True).first()
    if not machine:
        raise BadRequestError(f"Machine with ID {machine_id} not found")

    tab = ConfigurationTab(
        machine_id=machine_id,
        name=patch["name"],
        description=patch.get("description"),
        order=_next_tab_order(machine_id) if patch.get("order") is None else patch["order"],
        is_active=True,
    )
    db.session.add(tab)
    db.session.commit()
    return tab


def list_tabs(machine_id: int | None = None) -> list[ConfigurationTab]:
    query = db.session.query(ConfigurationTab).filter(ConfigurationTab.is_active.is_(True))
    if machine_id is not None:
        query = query.filter(ConfigurationTab.machine_id == machine_id)
    return query.order_by(
        ConfigurationTab.machine_id.asc(),
        ConfigurationTab.order.asc(),
        ConfigurationTab.id.asc(),
    ).all()


def get_tab(tab_id: int) -> ConfigurationTab:
    tab = db.session.query(ConfigurationTab).filter_by(id=tab_id, is_active=True).first()
    if not tab:
        raise NotFoundError(f"Configuration tab with ID {tab_id} not found")
    return tab


def _serialize_dependency_side(dep, side: str) -> dict:
    data = dep.to_dict()
    other = getattr(dep, side)
    data[side] = other.to_dict(include_options=True) if other else None
    return data


def get_tab_configurations(tab_id: int) -> dict:
    """
    The tab plus its visible placements in order, each with the
    configuration's active options (by display name), active rules and
    both directions of its dependency graph.
    """
    tab = get_tab(tab_id)
    placements = (
        db.session.query(TabConfiguration)
        .filter(TabConfiguration.tab_id == tab_id, TabConfiguration.is_visible.is_(True))
        .order_by(TabConfiguration.order.asc(), TabConfiguration.id.asc())
        .all()
    )

    configurations = []
    for tc in placements:
        data = tc.to_dict(include_configuration=True)
        config = tc.configuration
        data["configuration"]["parent_dependencies"] = [
            _serialize_dependency_side(dep, "parent_configuration") for dep in config.parent_dependencies
        ]
        data["configuration"]["child_dependencies"] = [
            _serialize_dependency_side(dep, "child_configuration") for dep in config.child_dependencies
        ]
        configurations.append(data)

    return {"tab": tab.to_dict(), "configurations": configurations}


def update_tab(tab_id: int, *, patch: dict) -> ConfigurationTab:
    tab = get_tab(tab_id)
    if "machine_id" in patch and patch["machine_id"] != tab.machine_id:
        raise BadRequestError("A tab cannot be moved to another machine")
    for k, v in patch.items():
        if k in TAB_MUTABLE_FIELDS:
            setattr(tab, k, v)
    db.session.commit()
    return tab


def delete_tab(tab_id: int) -> None:
    tab = get_tab(tab_id)

    count = db.session.query(TabConfiguration).filter_by(tab_id=tab_id).count()
    if count > 0:
        raise BadRequestError(
            f"Cannot delete configuration tab {tab_id} as it still has {count} configuration(s). "
            "Remove all configurations first."
        )

    tab.is_active = False
    db.session.commit()


# =============================================================================
# Placements
# =============================================================================

def add_configuration_to_tab(tab_id: int, *, patch: dict) -> TabConfiguration:
    tab = get_tab(tab_id)
    configuration_id = patch["configuration_id"]

    configuration = db.session.query(Configuration).filter_by(id=configuration_id, is_active=True).first()
    if not configuration:
        raise NotFoundError(f"Configuration with ID {configuration_id} not found")

    existing = db.session.query(TabConfiguration).filter_by(
        tab_id=tab.id, configuration_id=configuration_id
    ).first()
    if existing:
        raise ConflictError(f"Configuration {configuration_id} is already on tab {tab_id}")

    placement = TabConfiguration(
        tab_id=tab.id,
        configuration_id=configuration_id,
        order=_next_placement_order(tab.id) if patch.get("order") is None else patch["order"],
        is_visible=patch.get("is_visible", True),
        is_required=patch.get("is_required"),
    )
    db.session.add(placement)
    db.session.commit()
    return placement


def _get_placement(tab_id: int, configuration_id: int) -> TabConfiguration:
    placement = db.session.query(TabConfiguration).filter_by(
        tab_id=tab_id, configuration_id=configuration_id
    ).first()
    if not placement:
        raise NotFoundError(f"Configuration {configuration_id} is not on tab {tab_id}")
    return placement


def update_tab_configuration(tab_id: int, configuration_id: int, *, patch: dict) -> TabConfiguration:
    get_tab(tab_id)
    placement = _get_placement(tab_id, configuration_id)
    for k, v in patch.items():
        if k in PLACEMENT_MUTABLE_FIELDS:
            setattr(placement, k, v)
    db.session.commit()
    return placement


def remove_configuration_from_tab(tab_id: int, configuration_id: int) -> None:
    """Placements are join rows and are deleted outright."""
    get_tab(tab_id)
    placement = _get_placement(tab_id, configuration_id)
    db.session.delete(placement)
    db.session.commit()
