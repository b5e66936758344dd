"""
Catalog tests: machine groups, machines, tabs, configurations.

Verifies:
- Machines filter by group and by any-of tags; deletes are soft
- The hydrated machine view keeps active tabs and visible, active placements in order
- Tab order defaults to the next free slot; tabs with placements cannot be deleted
- Duplicate placements, options and dependencies answer 409
- Configurations used on a tab cannot be deleted
- Demo seeding and the management commands
"""

import pytest

from configurator.errors import BadRequestError
from configurator.models import ConfigurationDependency, Machine, User
from configurator.services import configuration_tab_service, machine_service, role_service
from configurator.services.seed_service import DEMO_CONFIGURATIONS, DEMO_MACHINE, seed_demo_catalog


# =============================================================================
# MACHINE GROUPS / MACHINES
# =============================================================================


class TestMachines:

    def test_group_lists_active_machines(self, client, user_headers, catalog):
        data = client.get("/api/machine-groups", headers=user_headers).get_json()

        assert data["count"] == 1
        assert data["items"][0]["machines"] == [
            {"id": catalog.machine.id, "name": "Sorter-600", "description": "600 mm sorter"}
        ]

    def test_create_group_and_machine(self, client, admin_headers):
        group = client.post("/api/machine-groups", json={"name": "Mills", "description": "Roller mills"},
                            headers=admin_headers)
        assert group.status_code == 201

        resp = client.post("/api/machines", json={
            "name": "Mill-2",
            "description": "Two-roller mill",
            "group_id": group.get_json()["id"],
            "tags": [" mill ", "", "2-roller"],
        }, headers=admin_headers)

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["tags"] == ["mill", "2-roller"]
        assert data["group"]["name"] == "Mills"
        assert data["tab_count"] == 0

    def test_machine_with_unknown_group(self, client, admin_headers, db_session):
        resp = client.post("/api/machines", json={"name": "X", "description": "x", "group_id": 9999},
                           headers=admin_headers)
        assert resp.status_code == 400

    def test_tags_must_be_strings(self, client, admin_headers, db_session):
        resp = client.post("/api/machines", json={"name": "X", "description": "x", "tags": "mill"},
                           headers=admin_headers)
        assert resp.status_code == 400

    def test_filter_by_tags_matches_any(self, db_session, catalog):
        db_session.add(Machine(name="Mill", description="Mill", tags=["mill"], is_active=True))
        db_session.commit()

        assert [m.name for m in machine_service.list_machines(tags=["600mm", "nope"])] == ["Sorter-600"]
        assert [m.name for m in machine_service.list_machines(tags=["mill", "sorter"])] == ["Mill", "Sorter-600"]
        assert [m.name for m in machine_service.list_machines(group_id=catalog.group.id)] == ["Sorter-600"]

    def test_tags_query_param(self, client, user_headers, catalog):
        data = client.get("/api/machines?tags=600mm,unknown", headers=user_headers).get_json()
        assert [m["id"] for m in data["items"]] == [catalog.machine.id]

    def test_soft_delete(self, client, admin_headers, catalog, db_session):
        resp = client.delete(f"/api/machines/{catalog.machine.id}", headers=admin_headers)

        assert resp.status_code == 200
        assert db_session.get(Machine, catalog.machine.id).is_active is False
        assert client.get(f"/api/machines/{catalog.machine.id}", headers=admin_headers).status_code == 404
        assert client.get("/api/machines", headers=admin_headers).get_json()["count"] == 0


class TestHydratedView:

    def test_structure(self, client, user_headers, catalog):
        resp = client.get(f"/api/machines/{catalog.machine.id}/configuration", headers=user_headers)

        assert resp.status_code == 200
        data = resp.get_json()
        assert [t["name"] for t in data["tabs"]] == ["General", "Performance"]

        general, performance = data["tabs"]
        assert [tc["configuration"]["name"] for tc in general["configurations"]] == ["Machine Label"]
        assert [tc["configuration"]["name"] for tc in performance["configurations"]] == [
            "Motor Power", "Throughput", "Extras",
        ]

    def test_options_are_active_and_sorted(self, client, user_headers, catalog):
        data = client.get(f"/api/machines/{catalog.machine.id}/configuration", headers=user_headers).get_json()

        motor = data["tabs"][1]["configurations"][0]["configuration"]
        assert [o["display_name"] for o in motor["options"]] == ["11 kW", "5.5 kW", "Custom motor"]

        throughput = data["tabs"][1]["configurations"][1]["configuration"]
        assert {r["rule_type"] for r in throughput["validation_rules"]} == {"MIN_VALUE", "MAX_VALUE"}

    def test_reachable_ids_include_invisible_placements(self, db_session, catalog):
        ids = machine_service.get_machine_configuration_ids(catalog.machine.id)
        assert sorted(ids) == catalog.reachable_ids

    def test_unknown_machine(self, client, user_headers, db_session):
        assert client.get("/api/machines/9999/configuration", headers=user_headers).status_code == 404


# =============================================================================
# TABS AND PLACEMENTS
# =============================================================================


class TestTabs:

    def test_order_defaults_to_next(self, client, admin_headers, catalog):
        resp = client.post("/api/configuration-tabs", json={"machine_id": catalog.machine.id, "name": "Options"},
                           headers=admin_headers)

        assert resp.status_code == 201
        assert resp.get_json()["order"] == 4

    def test_explicit_zero_order_is_kept(self, db_session, catalog):
        tab = configuration_tab_service.create_tab(
            patch={"machine_id": catalog.machine.id, "name": "Front", "order": 0}
        )
        placement = configuration_tab_service.add_configuration_to_tab(
            tab.id, patch={"configuration_id": catalog.spare.id, "order": 0}
        )

        assert tab.order == 0
        assert placement.order == 0

    def test_tab_for_unknown_machine(self, client, admin_headers, db_session):
        resp = client.post("/api/configuration-tabs", json={"machine_id": 9999, "name": "Orphan"},
                           headers=admin_headers)
        assert resp.status_code == 400

    def test_list_by_machine_skips_inactive(self, client, user_headers, catalog):
        data = client.get(f"/api/configuration-tabs?machine_id={catalog.machine.id}", headers=user_headers).get_json()
        assert [t["name"] for t in data["items"]] == ["General", "Performance"]

    def test_cannot_move_tab(self, db_session, catalog):
        with pytest.raises(BadRequestError):
            configuration_tab_service.update_tab(catalog.tabs.general.id, patch={"machine_id": 9999})

    def test_delete_blocked_by_placements(self, client, admin_headers, catalog):
        resp = client.delete(f"/api/configuration-tabs/{catalog.tabs.general.id}", headers=admin_headers)

        assert resp.status_code == 400
        assert "Remove all configurations first" in resp.get_json()["error"]

    def test_delete_empty_tab(self, client, admin_headers, catalog):
        tab = configuration_tab_service.create_tab(patch={"machine_id": catalog.machine.id, "name": "Empty"})

        assert client.delete(f"/api/configuration-tabs/{tab.id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/configuration-tabs/{tab.id}", headers=admin_headers).status_code == 404

    def test_tab_configurations_include_dependencies(self, client, user_headers, catalog, db_session):
        db_session.add(ConfigurationDependency(
            parent_configuration_id=catalog.motor.id,
            child_configuration_id=catalog.throughput.id,
            dependency_type="ENABLES",
            condition="value == '11KW'",
            action="max throughput 20",
        ))
        db_session.commit()

        data = client.get(f"/api/configuration-tabs/{catalog.tabs.performance.id}/configurations",
                          headers=user_headers).get_json()

        by_name = {tc["configuration"]["name"]: tc["configuration"] for tc in data["configurations"]}
        assert by_name["Motor Power"]["child_dependencies"][0]["condition"] == "value == '11KW'"
        assert by_name["Throughput"]["parent_dependencies"][0]["parent_configuration"]["name"] == "Motor Power"

    def test_placement_lifecycle(self, client, admin_headers, catalog):
        base = f"/api/configuration-tabs/{catalog.tabs.general.id}/configurations"

        added = client.post(base, json={"configuration_id": catalog.spare.id}, headers=admin_headers)
        assert added.status_code == 201
        assert added.get_json()["order"] == 4
        assert added.get_json()["is_visible"] is True

        duplicate = client.post(base, json={"configuration_id": catalog.spare.id}, headers=admin_headers)
        assert duplicate.status_code == 409

        updated = client.put(f"{base}/{catalog.spare.id}", json={"is_required": True, "order": 9},
                             headers=admin_headers)
        assert updated.status_code == 200
        assert updated.get_json()["is_required"] is True

        removed = client.delete(f"{base}/{catalog.spare.id}", headers=admin_headers)
        assert removed.status_code == 200
        assert client.delete(f"{base}/{catalog.spare.id}", headers=admin_headers).status_code == 404


# =============================================================================
# CONFIGURATIONS / OPTIONS / DEPENDENCIES
# =============================================================================


class TestConfigurations:

    def test_create_rejects_unknown_type(self, client, admin_headers, db_session):
        resp = client.post("/api/configurations", json={
            "name": "Colour", "description": "d", "help_text": "h", "type": "COLOR",
        }, headers=admin_headers)
        assert resp.status_code == 400

    def test_list_by_type(self, client, user_headers, catalog):
        data = client.get("/api/configurations?type=SINGLE_CHOICE", headers=user_headers).get_json()
        assert [c["name"] for c in data["items"]] == ["Motor Power"]

    def test_delete_blocked_while_placed(self, client, admin_headers, catalog):
        resp = client.delete(f"/api/configurations/{catalog.motor.id}", headers=admin_headers)

        assert resp.status_code == 400
        assert "Remove it from all tabs first" in resp.get_json()["error"]

    def test_delete_unplaced(self, client, admin_headers, catalog):
        assert client.delete(f"/api/configurations/{catalog.spare.id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/configurations/{catalog.spare.id}", headers=admin_headers).status_code == 404

    def test_options(self, client, admin_headers, catalog):
        base = f"/api/configurations/{catalog.motor.id}/options"

        created = client.post(base, json={"value": "15KW", "display_name": "15 kW", "price_modifier": "4000.50"},
                              headers=admin_headers)
        assert created.status_code == 201
        assert created.get_json()["price_modifier"] == 4000.5

        duplicate = client.post(base, json={"value": "15KW", "display_name": "Again"}, headers=admin_headers)
        assert duplicate.status_code == 409

        renamed = client.put(f"{base}/{catalog.options.motor_small.id}", json={"value": "11KW"}, headers=admin_headers)
        assert renamed.status_code == 409

        deactivated = client.delete(f"{base}/{created.get_json()['id']}", headers=admin_headers)
        assert deactivated.status_code == 200

    def test_price_modifier_limit(self, client, admin_headers, catalog):
        resp = client.post(f"/api/configurations/{catalog.motor.id}/options",
                           json={"value": "HUGE", "display_name": "Huge", "price_modifier": "99999999999"},
                           headers=admin_headers)
        assert resp.status_code == 400

    def test_rules(self, client, admin_headers, catalog):
        base = f"/api/configurations/{catalog.label.id}/rules"

        bad_regex = client.post(base, json={"rule_type": "REGEX", "rule_value": "([", "error_message": "x"},
                                headers=admin_headers)
        assert bad_regex.status_code == 400

        bad_bound = client.post(base, json={"rule_type": "MIN_VALUE", "rule_value": "one", "error_message": "x"},
                                headers=admin_headers)
        assert bad_bound.status_code == 400

        created = client.post(base, json={"rule_type": "CUSTOM", "rule_value": "checkLabel", "error_message": "x"},
                              headers=admin_headers)
        assert created.status_code == 201

    def test_dependencies(self, client, admin_headers, catalog):
        payload = {
            "parent_configuration_id": catalog.motor.id,
            "child_configuration_id": catalog.extras.id,
            "dependency_type": "REQUIRES",
            "condition": "value == '11KW'",
            "action": "show",
        }

        created = client.post("/api/configurations/dependencies", json=payload, headers=admin_headers)
        assert created.status_code == 201
        assert client.post("/api/configurations/dependencies", json=payload, headers=admin_headers).status_code == 409

        deps = client.get(f"/api/configurations/{catalog.extras.id}/dependencies", headers=admin_headers).get_json()
        assert [d["parent_configuration_id"] for d in deps["parent_dependencies"]] == [catalog.motor.id]
        assert deps["child_dependencies"] == []

        removed = client.delete(f"/api/configurations/dependencies/{created.get_json()['id']}", headers=admin_headers)
        assert removed.status_code == 200

    def test_self_dependency(self, client, admin_headers, catalog):
        resp = client.post("/api/configurations/dependencies", json={
            "parent_configuration_id": catalog.motor.id,
            "child_configuration_id": catalog.motor.id,
        }, headers=admin_headers)
        assert resp.status_code == 400


# =============================================================================
# DEMO SEED / CLI
# =============================================================================


class TestSeedAndCommands:

    def test_seed_is_idempotent(self, db_session):
        first = seed_demo_catalog()
        second = seed_demo_catalog()

        assert first.id == second.id
        assert db_session.query(Machine).count() == 1
        assert first.tags == DEMO_MACHINE["tags"]
        assert len(machine_service.get_machine_configuration_ids(first.id)) == len(DEMO_CONFIGURATIONS)

    def test_seed_command(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "seed-demo"])

        assert result.exit_code == 0
        assert "Trias-600" in result.output

    def test_init_roles_and_create_user(self, app, db_session):
        runner = app.test_cli_runner()

        assert runner.invoke(args=["system", "init-roles"]).exit_code == 0
        result = runner.invoke(args=[
            "users", "create",
            "--email", "cli@configurator.test",
            "--password", "Password123!",
            "--role", "SALES", "--role", "USER",
        ])

        assert result.exit_code == 0
        user = db_session.query(User).filter_by(email="cli@configurator.test").one()
        assert sorted(role_service.get_user_roles(user.id)) == ["SALES", "USER"]

    def test_roles_sync_unknown_user(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["roles", "sync", "ghost@configurator.test", "ADMIN"])
        assert "not found" in result.output
