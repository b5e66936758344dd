# Overview: Service-layer operations for machine groups; top level of the catalog.

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import MachineGroup

MACHINE_GROUP_MUTABLE_FIELDS = {"name", "description", "color", "icon"}


def create_machine_group(*, patch: dict) -> MachineGroup:
    group = MachineGroup(is_active=True)
    for k, v in patch.items():
        if k in MACHINE_GROUP_MUTABLE_FIELDS:
            setattr(group, k, v)
    db.session.add(group)
    db.session.commit()
    return group


def list_machine_groups() -> list[MachineGroup]:
    return (
        db.session.query(MachineGroup)
        .filter(MachineGroup.is_active.is_(True))
        .order_by(MachineGroup.name.asc(), MachineGroup.id.asc())
        .all()
    )


def get_machine_group(group_id: int) -> MachineGroup:
    group = db.session.query(MachineGroup).filter_by(id=group_id, is_active=True).first()
    if not group:
        raise NotFoundError(f"Machine group with ID {group_id} not found")
    return group


def update_machine_group(group_id: int, *, patch: dict) -> MachineGroup:
    group = get_machine_group(group_id)
    for k, v in patch.items():
        if k in MACHINE_GROUP_MUTABLE_FIELDS:
            setattr(group, k, v)
    db.session.commit()
    return group


def delete_machine_group(group_id: int) -> None:
    """Soft delete. Machines of the group are left untouched."""
    group = get_machine_group(group_id)
    group.is_active = False
    db.session.commit()
