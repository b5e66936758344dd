# Overview: Service-layer operations for roles and role grants; backs the authorization gate.

"""
Role Resolution Service

Maps users to the names of the roles currently in effect for them and keeps
SYSTEM-managed grants in sync with a desired role set.

A grant is in effect iff UserRole.is_active and (expires_at is NULL or in
the future). Users may hold several grants at once.

DESIGN:
- Roles are looked up by name and auto-created on first reference.
- Only grants with assigned_by == "SYSTEM" are touched by sync_user_roles;
  grants made by other actors are left alone.
- Role.permissions is opaque JSON: stored and returned, never consulted by
  the gate. Authorization compares role names only.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from flask import current_app

from ..errors import ForbiddenError, NotFoundError
from ..extensions import db
from ..models import Role, UserRole
from ..time_utils import utcnow


SYSTEM_ASSIGNER = "SYSTEM"

DEFAULT_ROLE_DISPLAY_NAMES = {
    "USER": "Standard User",
    "ADMIN": "Administrator",
    "SALES": "Sales Representative",
    "MODERATOR": "Moderator",
}

# Roles that see every customer and quotation, not only their own
MANAGER_ROLES = ("ADMIN", "SALES_MANAGER")


def _find_active_roles_by_names(role_names: Sequence[str]) -> list[Role]:
    if not role_names:
        return []
    return db.session.query(Role).filter(
        Role.name.in_(list(role_names)),
        Role.is_active.is_(True),
    ).all()


def _build_role(name: str) -> Role:
    display_name = DEFAULT_ROLE_DISPLAY_NAMES.get(name, name)
    return Role(
        name=name,
        display_name=display_name,
        description=f"{display_name} role",
        is_active=True,
        is_system=True,
    )


def get_role_ids_by_names(role_names: Sequence[str]) -> list[int]:
    """
    Return ids of the active roles with the given names, creating any that
    are missing.

    Order of the result follows query order, not input order.
    """
    existing = _find_active_roles_by_names(role_names)
    existing_names = {role.name for role in existing}
    missing = []
    for name in role_names:
        if name not in existing_names and name not in missing:
            missing.append(name)

    if missing:
        # A retired role with the same name blocks creation (name is unique);
        # such names are skipped, matching a skip-duplicates insert.
        taken = {
            name for (name,) in db.session.query(Role.name).filter(Role.name.in_(missing)).all()
        }
        for name in missing:
            if name not in taken:
                db.session.add(_build_role(name))
        db.session.commit()
        current_app.logger.info("Created roles: %s", ", ".join(n for n in missing if n not in taken))
        existing.extend(_find_active_roles_by_names(missing))

    return [role.id for role in existing]


def _grant_roles(user_id: int, role_ids: Iterable[int], assigned_by: str) -> list[int]:
    """Create or reactivate grants; returns the role ids whose grant changed."""
    role_ids = list(dict.fromkeys(role_ids))
    if not role_ids:
        return []

    existing = {
        grant.role_id: grant
        for grant in db.session.query(UserRole).filter(
            UserRole.user_id == user_id,
            UserRole.role_id.in_(role_ids),
        ).all()
    }

    changed = []
    for role_id in role_ids:
        grant = existing.get(role_id)
        if grant is None:
            db.session.add(UserRole(
                user_id=user_id,
                role_id=role_id,
                assigned_by=assigned_by,
                assigned_at=utcnow(),
                is_active=True,
            ))
            changed.append(role_id)
        elif not grant.is_active and grant.assigned_by == assigned_by:
            grant.is_active = True
            grant.assigned_at = utcnow()
            changed.append(role_id)

    if changed:
        db.session.commit()
    return changed


def assign_roles_to_user(user_id: int, role_ids: Iterable[int], assigned_by: str = SYSTEM_ASSIGNER) -> int:
    """
    Grant roles to a user, skipping grants that already exist.

    A previously deactivated grant by the same assigner is reactivated
    instead of duplicated (one row per (user, role)).

    Returns the number of grants created or reactivated.
    """
    return len(_grant_roles(user_id, role_ids, assigned_by))


def get_user_roles(user_id: int) -> list[str]:
    """Names of the roles whose grants are in effect for the user."""
    now = utcnow()
    grants = db.session.query(UserRole).filter(
        UserRole.user_id == user_id,
        UserRole.is_active.is_(True),
        db.or_(UserRole.expires_at.is_(None), UserRole.expires_at > now),
    ).all()
    return [grant.role.name for grant in grants]


def has_user_role(user_id: int, role_name: str) -> bool:
    return role_name in get_user_roles(user_id)


def has_user_any_role(user_id: int, role_names: Sequence[str]) -> bool:
    user_roles = get_user_roles(user_id)
    return any(name in user_roles for name in role_names)


def is_manager(user_id: int) -> bool:
    """ADMIN and SALES_MANAGER may access every customer and quotation."""
    return has_user_any_role(user_id, MANAGER_ROLES)


def _get_current_system_role_ids(user_id: int) -> list[int]:
    grants = db.session.query(UserRole).filter(
        UserRole.user_id == user_id,
        UserRole.assigned_by == SYSTEM_ASSIGNER,
        UserRole.is_active.is_(True),
    ).all()
    return [grant.role_id for grant in grants]


def sync_user_roles(user_id: int, new_role_ids: Sequence[int]) -> dict:
    """
    Make the user's active SYSTEM grants equal to new_role_ids.

    Grants not in the new set are deactivated; missing ones are created.
    Running twice with the same set writes nothing the second time.

    Returns {"removed": [...role ids], "added": [...role ids]}.
    """
    current_ids = _get_current_system_role_ids(user_id)
    to_remove = [rid for rid in current_ids if rid not in new_role_ids]
    to_add = [rid for rid in new_role_ids if rid not in current_ids]
    added = []

    if to_remove:
        db.session.query(UserRole).filter(
            UserRole.user_id == user_id,
            UserRole.role_id.in_(to_remove),
            UserRole.assigned_by == SYSTEM_ASSIGNER,
        ).update({UserRole.is_active: False}, synchronize_session="fetch")
        db.session.commit()

    if to_add:
        # A grant deactivated by another assigner is left alone and not reported
        added = _grant_roles(user_id, to_add, SYSTEM_ASSIGNER)

    if to_remove or added:
        current_app.logger.info(
            "Synced roles for user %s: removed=%s added=%s", user_id, to_remove, added
        )
    return {"removed": to_remove, "added": added}


def sync_user_role_names(user_id: int, role_names: Sequence[str]) -> dict:
    """sync_user_roles by role name (names are resolved/created first)."""
    return sync_user_roles(user_id, get_role_ids_by_names(role_names))


def roles_satisfied(required_roles: Sequence[str] | None, user_roles: Sequence[str] | None) -> bool:
    """
    Authorization gate.

    No requirement (None or empty) -> granted. Otherwise granted iff the
    user holds at least one required role; a missing user (None) is denied.
    """
    if not required_roles:
        return True
    if user_roles is None:
        return False
    return any(role in user_roles for role in required_roles)


def require_roles_satisfied(required_roles: Sequence[str] | None, user_roles: Sequence[str] | None) -> None:
    """roles_satisfied, raising ForbiddenError on denial."""
    if not roles_satisfied(required_roles, user_roles):
        raise ForbiddenError(required_roles or [])


# =============================================================================
# Role administration
# =============================================================================

def list_roles(include_inactive: bool = False) -> list[Role]:
    query = db.session.query(Role)
    if not include_inactive:
        query = query.filter(Role.is_active.is_(True))
    return query.order_by(Role.name).all()


def get_role(role_id: int) -> Role:
    role = db.session.get(Role, role_id)
    if not role:
        raise NotFoundError(f"Role with ID {role_id} not found")
    return role


def update_role(
    role_id: int,
    *,
    display_name: str | None = None,
    description: str | None = None,
    permissions=None,
    is_active: bool | None = None,
) -> Role:
    """Update role metadata. permissions is stored as given (opaque JSON)."""
    role = get_role(role_id)
    if display_name is not None:
        role.display_name = display_name
    if description is not None:
        role.description = description
    if permissions is not None:
        role.permissions = permissions
    if is_active is not None:
        role.is_active = is_active
    db.session.commit()
    return role


def update_role_permissions(role_id: int, permissions) -> Role:
    return update_role(role_id, permissions=permissions)
