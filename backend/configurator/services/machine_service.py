# Overview: Service-layer operations for machines; listing, hydrated configuration views, reachability.

"""
Machine Service

A machine owns ordered configuration tabs; each tab places configurations
through TabConfiguration rows. get_machine_with_configuration returns the
fully hydrated view used by the configurator UI, and
get_machine_configuration_ids returns the set of configurations a quotation
for the machine is initialized with.
"""

from __future__ import annotations

from ..errors import BadRequestError, NotFoundError
from ..extensions import db
from ..models import Configuration, ConfigurationTab, Machine, MachineGroup, TabConfiguration

MACHINE_MUTABLE_FIELDS = {"name", "description", "group_id", "tags"}


def _require_group(group_id: int | None) -> None:
    if group_id is None:
        return
    exists = db.session.query(MachineGroup.id).filter_by(id=group_id, is_active=True).first()
    if not exists:
        raise BadRequestError(f"Machine group with ID {group_id} not found")


def create_machine(*, patch: dict) -> Machine:
    _require_group(patch.get("group_id"))

    machine = Machine(is_active=True, tags=[])
    for k, v in patch.items():
        if k in MACHINE_MUTABLE_FIELDS:
            setattr(machine, k, v)
    db.session.add(machine)
    db.session.commit()
    return machine


def list_machines(group_id: int | None = None, tags: list[str] | None = None) -> list[Machine]:
    """
    Active machines ordered by name.

    tags matches machines carrying at least one of the given tags.
    """
    query = db.session.query(Machine).filter(Machine.is_active.is_(True))
    if group_id is not None:
        query = query.filter(Machine.group_id == group_id)

    machines = query.order_by(Machine.name.asc(), Machine.id.asc()).all()

    # JSON containment differs between backends; filter in Python
    if tags:
        wanted = set(tags)
        machines = [m for m in machines if wanted.intersection(m.tags or [])]
    return machines


def get_machine(machine_id: int) -> Machine:
    machine = db.session.query(Machine).filter_by(id=machine_id, is_active=True).first()
    if not machine:
        raise NotFoundError(f"Machine with ID {machine_id} not found")
    return machine


def serialize_tab_configuration(tc: TabConfiguration) -> dict:
    data = tc.to_dict()
    data["configuration"] = tc.configuration.to_dict(include_options=True)
    return data


def get_machine_with_configuration(machine_id: int) -> dict:
    """
    Machine -> active tabs (by order) -> visible tab configurations (by
    order) -> configuration with active options and rules.
    """
    machine = get_machine(machine_id)
    data = machine.to_dict()
    data["tabs"] = []
    for tab in machine.tabs:
        if not tab.is_active:
            continue
        tab_data = tab.to_dict()
        tab_data["configurations"] = [
            serialize_tab_configuration(tc)
            for tc in tab.tab_configurations
            if tc.is_visible and tc.configuration.is_active
        ]
        data["tabs"].append(tab_data)
    return data


def get_machine_configuration_ids(machine_id: int) -> list[int]:
    """
    Distinct ids of active configurations reachable from the machine's
    active tabs, in tab order then placement order.
    """
    rows = (
        db.session.query(TabConfiguration.configuration_id)
        .join(ConfigurationTab, ConfigurationTab.id == TabConfiguration.tab_id)
        .join(Configuration, Configuration.id == TabConfiguration.configuration_id)
        .filter(
            ConfigurationTab.machine_id == machine_id,
            ConfigurationTab.is_active.is_(True),
            Configuration.is_active.is_(True),
        )
        .order_by(ConfigurationTab.order.asc(), TabConfiguration.order.asc(), TabConfiguration.id.asc())
        .all()
    )
    return list(dict.fromkeys(configuration_id for (configuration_id,) in rows))


def update_machine(machine_id: int, *, patch: dict) -> Machine:
    machine = get_machine(machine_id)
    if "group_id" in patch:
        _require_group(patch["group_id"])
    for k, v in patch.items():
        if k in MACHINE_MUTABLE_FIELDS:
            setattr(machine, k, v)
    db.session.commit()
    return machine


def delete_machine(machine_id: int) -> None:
    machine = get_machine(machine_id)
    machine.is_active = False
    db.session.commit()
