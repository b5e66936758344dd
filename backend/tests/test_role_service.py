"""
Role resolution tests.

Verifies:
- Roles are created on first reference with known display names
- Assignment skips duplicates; sync is idempotent and only touches SYSTEM grants
- Expired or inactive grants are not in effect
- The authorization gate semantics
"""

from datetime import timedelta

import pytest

from configurator.errors import ForbiddenError, NotFoundError
from configurator.models import Role, UserRole
from configurator.services import role_service
from configurator.time_utils import utcnow


# =============================================================================
# ROLE LOOKUP / AUTO-CREATION
# =============================================================================


class TestRoleLookup:

    def test_missing_roles_are_created_with_display_names(self, db_session):
        ids = role_service.get_role_ids_by_names(["USER", "ADMIN", "SALES_MANAGER"])

        assert len(ids) == 3
        roles = {r.name: r for r in db_session.query(Role).all()}
        assert roles["USER"].display_name == "Standard User"
        assert roles["ADMIN"].display_name == "Administrator"
        assert roles["ADMIN"].description == "Administrator role"
        assert roles["ADMIN"].is_system is True
        # Unknown names fall back to the name itself
        assert roles["SALES_MANAGER"].display_name == "SALES_MANAGER"

    def test_lookup_is_stable(self, db_session):
        first = role_service.get_role_ids_by_names(["SALES"])
        second = role_service.get_role_ids_by_names(["SALES"])

        assert first == second
        assert db_session.query(Role).filter_by(name="SALES").count() == 1

    def test_retired_role_is_not_recreated(self, db_session):
        db_session.add(Role(name="MODERATOR", display_name="Moderator", is_active=False))
        db_session.commit()

        ids = role_service.get_role_ids_by_names(["MODERATOR", "USER"])

        assert len(ids) == 1
        assert db_session.query(Role).filter_by(name="MODERATOR").count() == 1


# =============================================================================
# ASSIGNMENT / SYNC
# =============================================================================


class TestAssignmentAndSync:

    def test_assign_skips_existing_grants(self, make_user, db_session):
        user = make_user("assign@configurator.test", roles=None)
        role_ids = role_service.get_role_ids_by_names(["USER", "SALES"])

        assert role_service.assign_roles_to_user(user.id, role_ids) == 2
        assert role_service.assign_roles_to_user(user.id, role_ids) == 0
        assert db_session.query(UserRole).filter_by(user_id=user.id).count() == 2
        assert all(g.assigned_by == "SYSTEM" for g in db_session.query(UserRole).all())

    def test_sync_replaces_system_grants(self, make_user):
        user = make_user("sync@configurator.test", roles=["USER", "SALES"])
        sales_id, manager_id = (
            role_service.get_role_ids_by_names(["SALES"])[0],
            role_service.get_role_ids_by_names(["SALES_MANAGER"])[0],
        )
        user_id = role_service.get_role_ids_by_names(["USER"])[0]

        result = role_service.sync_user_roles(user.id, [user_id, manager_id])

        assert result["removed"] == [sales_id]
        assert result["added"] == [manager_id]
        assert sorted(role_service.get_user_roles(user.id)) == ["SALES_MANAGER", "USER"]

    def test_sync_twice_is_a_noop(self, make_user):
        user = make_user("twice@configurator.test", roles=["ADMIN"])

        result = role_service.sync_user_role_names(user.id, ["ADMIN"])

        assert result == {"removed": [], "added": []}

    def test_sync_reactivates_removed_grant(self, make_user, db_session):
        user = make_user("again@configurator.test", roles=["SALES"])
        role_service.sync_user_role_names(user.id, ["USER"])
        role_service.sync_user_role_names(user.id, ["SALES"])

        assert role_service.get_user_roles(user.id) == ["SALES"]
        assert db_session.query(UserRole).filter_by(user_id=user.id).count() == 2

    def test_sync_leaves_manual_grants_alone(self, make_user, db_session):
        user = make_user("manual@configurator.test", roles=["USER"])
        admin_role_id = role_service.get_role_ids_by_names(["ADMIN"])[0]
        role_service.assign_roles_to_user(user.id, [admin_role_id], assigned_by="admin@configurator.test")

        role_service.sync_user_role_names(user.id, ["SALES"])

        assert sorted(role_service.get_user_roles(user.id)) == ["ADMIN", "SALES"]

    def test_sync_reports_only_changed_grants(self, make_user, db_session):
        user = make_user("retired@configurator.test", roles=None)
        admin_role_id = role_service.get_role_ids_by_names(["ADMIN"])[0]
        role_service.assign_roles_to_user(user.id, [admin_role_id], assigned_by="admin@configurator.test")
        db_session.query(UserRole).filter_by(user_id=user.id).update({UserRole.is_active: False})
        db_session.commit()

        result = role_service.sync_user_roles(user.id, [admin_role_id])

        assert result == {"removed": [], "added": []}
        assert role_service.get_user_roles(user.id) == []


# =============================================================================
# GRANTS IN EFFECT
# =============================================================================


class TestGrantsInEffect:

    def test_expired_grant_is_ignored(self, make_user, db_session):
        user = make_user("expired@configurator.test", roles=["USER", "SALES"])
        grant = (
            db_session.query(UserRole)
            .join(Role)
            .filter(UserRole.user_id == user.id, Role.name == "SALES")
            .one()
        )
        grant.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        assert role_service.get_user_roles(user.id) == ["USER"]
        assert not role_service.has_user_role(user.id, "SALES")

    def test_future_expiry_is_in_effect(self, make_user, db_session):
        user = make_user("future@configurator.test", roles=["SALES"])
        grant = db_session.query(UserRole).filter_by(user_id=user.id).one()
        grant.expires_at = utcnow() + timedelta(days=1)
        db_session.commit()

        assert role_service.has_user_role(user.id, "SALES")

    def test_any_role_and_manager(self, make_user):
        seller = make_user("seller@configurator.test", roles=["SALES"])
        boss = make_user("boss@configurator.test", roles=["SALES_MANAGER"])

        assert role_service.has_user_any_role(seller.id, ["ADMIN", "SALES"])
        assert not role_service.has_user_any_role(seller.id, ["ADMIN"])
        assert not role_service.is_manager(seller.id)
        assert role_service.is_manager(boss.id)

    def test_user_without_grants_has_no_roles(self, make_user):
        user = make_user("nobody@configurator.test", roles=None)
        assert role_service.get_user_roles(user.id) == []


# =============================================================================
# AUTHORIZATION GATE
# =============================================================================


class TestRolesSatisfied:

    @pytest.mark.parametrize(
        "required,user_roles,expected",
        [
            ([], None, True),
            (None, ["USER"], True),
            (["ADMIN"], None, False),
            (["ADMIN"], [], False),
            (["ADMIN", "SALES"], ["SALES"], True),
            (["ADMIN"], ["SALES", "USER"], False),
        ],
    )
    def test_gate(self, required, user_roles, expected):
        assert role_service.roles_satisfied(required, user_roles) is expected

    def test_denial_raises_forbidden(self):
        with pytest.raises(ForbiddenError) as exc:
            role_service.require_roles_satisfied(["ADMIN", "SALES_MANAGER"], ["SALES"])

        assert exc.value.status_code == 403
        assert exc.value.to_dict()["required_roles"] == ["ADMIN", "SALES_MANAGER"]

    def test_grant_passes_silently(self):
        assert role_service.require_roles_satisfied(["SALES"], ["SALES", "USER"]) is None


# =============================================================================
# ROLE ADMINISTRATION
# =============================================================================


class TestRoleAdministration:

    def test_permissions_are_stored_opaquely(self, db_session):
        role_id = role_service.get_role_ids_by_names(["SALES"])[0]
        permissions = {"quotations": ["read", "write"], "legacy": True}

        role = role_service.update_role_permissions(role_id, permissions)

        assert role.permissions == permissions
        assert role_service.get_role(role_id).to_dict()["permissions"] == permissions

    def test_unknown_role(self, db_session):
        with pytest.raises(NotFoundError):
            role_service.get_role(9999)

    def test_list_hides_inactive_by_default(self, db_session):
        role_service.get_role_ids_by_names(["USER", "ADMIN"])
        admin_role = db_session.query(Role).filter_by(name="ADMIN").one()
        role_service.update_role(admin_role.id, is_active=False)

        assert [r.name for r in role_service.list_roles()] == ["USER"]
        assert {r.name for r in role_service.list_roles(include_inactive=True)} == {"USER", "ADMIN"}
