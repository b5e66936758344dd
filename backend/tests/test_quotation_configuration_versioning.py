"""
Quotation configuration versioning tests.

Verifies:
- Attaching a machine creates one NULL row per reachable configuration
- Every effective write appends a successor and retires the current row
- Unchanged writes are no-ops; clears always append
- Exactly one current row per (quotation, configuration) at all times
- A second current row is rejected; a lost race is retried
- Hash and change-description helpers
"""

import pytest
from sqlalchemy import false
from sqlalchemy.exc import IntegrityError

from configurator.errors import NotFoundError
from configurator.models import QuotationConfiguration
from configurator.services import quotation_configuration_service as qc_service
from configurator.services.quotation_configuration_service import compute_value_hash, describe_change


def _rows(db_session, quotation_id, configuration_id):
    return (
        db_session.query(QuotationConfiguration)
        .filter_by(quotation_id=quotation_id, configuration_id=configuration_id)
        .order_by(QuotationConfiguration.id)
        .all()
    )


def _assert_single_current(db_session, quotation_id):
    rows = db_session.query(QuotationConfiguration).filter_by(quotation_id=quotation_id).all()
    current_by_pair = {}
    for row in rows:
        if row.is_current_version:
            assert row.configuration_id not in current_by_pair, "two current rows for one configuration"
            current_by_pair[row.configuration_id] = row
    assert set(current_by_pair) == {row.configuration_id for row in rows}


@pytest.fixture
def quotation(make_quotation, sales, customer, catalog):
    return make_quotation(sales, customer, machine=catalog.machine)


# =============================================================================
# HELPERS
# =============================================================================


class TestHelpers:

    def test_hash_is_deterministic(self):
        assert compute_value_hash(3, "x") == compute_value_hash(3, "x")
        assert len(compute_value_hash(None, None)) == 64

    def test_hash_distinguishes_fields(self):
        assert compute_value_hash(1, None) != compute_value_hash(None, "1")
        assert compute_value_hash(1, "a") != compute_value_hash(1, "b")

    @pytest.mark.parametrize("old_opt,old_cv,new_opt,new_cv,expected", [
        (None, None, 1, None, "Option selected"),
        (1, None, None, None, "Option cleared"),
        (1, None, 2, None, "Option changed"),
        (None, None, None, "x", "Custom value added"),
        (None, "x", None, None, "Custom value cleared"),
        (None, "x", None, "y", "Custom value changed"),
        (1, None, 2, "x", "Option changed, Custom value added"),
        (1, "x", 1, "x", "Configuration updated"),
    ])
    def test_describe_change(self, old_opt, old_cv, new_opt, new_cv, expected):
        assert describe_change(old_opt, old_cv, new_opt, new_cv) == expected


# =============================================================================
# INITIALIZATION
# =============================================================================


class TestInitialization:

    def test_rows_for_reachable_configurations(self, db_session, quotation, catalog):
        rows = qc_service.get_current_configurations(quotation.id)

        assert sorted(r.configuration_id for r in rows) == catalog.reachable_ids
        for row in rows:
            assert row.selected_option_id is None
            assert row.custom_value is None
            assert row.notes is None
            assert row.quotation_version == 1
            assert row.is_current_version is True
            assert row.previous_value_hash is None
            assert row.change_description == "Initial configuration state"

    def test_excludes_inactive_configuration_and_tab(self, db_session, quotation, catalog):
        ids = {r.configuration_id for r in qc_service.get_current_configurations(quotation.id)}

        assert catalog.retired.id not in ids
        assert catalog.archived.id not in ids
        assert catalog.hidden.id in ids

    def test_no_machine_no_rows(self, db_session, make_quotation, sales, customer):
        quotation = make_quotation(sales, customer)
        assert qc_service.get_current_configurations(quotation.id) == []

    def test_reinitialization_skips_existing(self, db_session, quotation, catalog):
        assert qc_service.initialize_configurations(quotation) == 0
        assert len(qc_service.get_current_configurations(quotation.id)) == len(catalog.reachable_ids)


# =============================================================================
# VERSIONED WRITES
# =============================================================================


class TestVersionedWrites:

    def test_select_option_appends_version(self, db_session, quotation, catalog):
        option = catalog.options.motor_small

        row = qc_service.save_configuration(quotation, catalog.motor.id, selected_option_id=option.id)

        assert row.quotation_version == 2
        assert row.is_current_version is True
        assert row.selected_option_id == option.id
        assert row.previous_value_hash == compute_value_hash(None, None)
        assert row.change_description == "Option selected"

        history = _rows(db_session, quotation.id, catalog.motor.id)
        assert [r.quotation_version for r in history] == [1, 2]
        assert [r.is_current_version for r in history] == [False, True]

    def test_unchanged_write_is_noop(self, db_session, quotation, catalog):
        first = qc_service.save_configuration(quotation, catalog.label.id, custom_value="Line A", notes="n")
        second = qc_service.save_configuration(quotation, catalog.label.id, custom_value="Line A", notes="n")

        assert second.id == first.id
        assert len(_rows(db_session, quotation.id, catalog.label.id)) == 2

    def test_notes_only_change_appends(self, db_session, quotation, catalog):
        qc_service.save_configuration(quotation, catalog.label.id, custom_value="Line A")
        row = qc_service.save_configuration(quotation, catalog.label.id, custom_value="Line A", notes="call back")

        assert row.quotation_version == 3
        assert row.notes == "call back"
        assert row.change_description == "Configuration updated"
        assert row.previous_value_hash == compute_value_hash(None, "Line A")

    def test_option_change_with_custom_value(self, db_session, quotation, catalog):
        qc_service.save_configuration(quotation, catalog.motor.id, selected_option_id=catalog.options.motor_small.id)
        row = qc_service.save_configuration(
            quotation, catalog.motor.id,
            selected_option_id=catalog.options.motor_large.id,
            custom_value="with brake",
        )

        assert row.change_description == "Option changed, Custom value added"
        assert row.previous_value_hash == compute_value_hash(catalog.options.motor_small.id, None)

    def test_blank_custom_value_is_null(self, db_session, quotation, catalog):
        row = qc_service.save_configuration(quotation, catalog.label.id, custom_value="   ")

        assert row.custom_value is None
        assert row.quotation_version == 1
        assert len(_rows(db_session, quotation.id, catalog.label.id)) == 1

    def test_write_without_existing_row(self, db_session, quotation, catalog):
        row = qc_service.save_configuration(quotation, catalog.spare.id, custom_value="extra")

        assert row.quotation_version == 1
        assert row.change_description == "Initial configuration"
        assert row.previous_value_hash is None

    def test_unknown_configuration(self, db_session, quotation):
        with pytest.raises(NotFoundError):
            qc_service.save_configuration(quotation, 9999, custom_value="x")

    def test_option_of_other_configuration(self, db_session, quotation, catalog):
        with pytest.raises(NotFoundError):
            qc_service.save_configuration(
                quotation, catalog.motor.id, selected_option_id=catalog.options.extras_camera.id
            )
        assert len(_rows(db_session, quotation.id, catalog.motor.id)) == 1

    def test_many_writes_keep_one_current(self, db_session, quotation, catalog):
        for value in ("1", "2", "3", "2", "2", "5"):
            qc_service.save_configuration(quotation, catalog.throughput.id, custom_value=value)

        history = qc_service.get_configuration_history(quotation.id, catalog.throughput.id)
        assert [r.custom_value for r in history] == [None, "1", "2", "3", "2", "5"]
        assert [r.quotation_version for r in history] == [1, 2, 3, 4, 5, 6]
        _assert_single_current(db_session, quotation.id)

    def test_history_hash_chain(self, db_session, quotation, catalog):
        qc_service.save_configuration(quotation, catalog.throughput.id, custom_value="4")
        qc_service.save_configuration(quotation, catalog.throughput.id, custom_value="8")

        history = qc_service.get_configuration_history(quotation.id, catalog.throughput.id)
        for previous, current in zip(history, history[1:]):
            assert current.previous_value_hash == compute_value_hash(
                previous.selected_option_id, previous.custom_value
            )


# =============================================================================
# CURRENT-ROW GUARD
# =============================================================================


class TestCurrentRowGuard:

    def test_index_rejects_second_current_row(self, db_session, quotation, catalog):
        db_session.add(QuotationConfiguration(
            quotation_id=quotation.id,
            configuration_id=catalog.motor.id,
            quotation_version=2,
            is_current_version=True,
        ))

        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

        assert len(_rows(db_session, quotation.id, catalog.motor.id)) == 1

    def test_lost_race_is_retried(self, db_session, quotation, catalog, monkeypatch):
        calls = []
        real_lock = qc_service.lock_for_update

        def stale_first_read(query):
            calls.append(query)
            if len(calls) == 1:
                # Concurrent writer's row is invisible to this attempt
                return real_lock(query.filter(false()))
            return real_lock(query)

        monkeypatch.setattr(qc_service, "lock_for_update", stale_first_read)
        option = catalog.options.motor_small

        row = qc_service.save_configuration(quotation, catalog.motor.id, selected_option_id=option.id)

        assert len(calls) == 2
        assert row.quotation_version == 2
        assert row.change_description == "Option selected"
        assert len(_rows(db_session, quotation.id, catalog.motor.id)) == 2
        _assert_single_current(db_session, quotation.id)


# =============================================================================
# PARTIAL UPDATE / CLEAR
# =============================================================================


class TestUpdateAndClear:

    def test_partial_update_keeps_other_fields(self, db_session, quotation, catalog):
        qc_service.save_configuration(
            quotation, catalog.motor.id, selected_option_id=catalog.options.motor_small.id, notes="keep me"
        )

        row = qc_service.update_configuration(quotation, catalog.motor.id, custom_value="painted")

        assert row.selected_option_id == catalog.options.motor_small.id
        assert row.notes == "keep me"
        assert row.custom_value == "painted"
        assert row.change_description == "Custom value added"

    def test_update_can_clear_a_field(self, db_session, quotation, catalog):
        qc_service.save_configuration(quotation, catalog.motor.id, selected_option_id=catalog.options.motor_small.id)

        row = qc_service.update_configuration(quotation, catalog.motor.id, selected_option_id=None)

        assert row.selected_option_id is None
        assert row.change_description == "Option cleared"

    def test_update_without_row(self, db_session, quotation, catalog):
        with pytest.raises(NotFoundError):
            qc_service.update_configuration(quotation, catalog.spare.id, custom_value="x")

    def test_remove_appends_cleared_version(self, db_session, quotation, catalog):
        qc_service.save_configuration(quotation, catalog.label.id, custom_value="Line A", notes="n")

        row = qc_service.remove_configuration(quotation, catalog.label.id)

        assert row.selected_option_id is None
        assert row.custom_value is None
        assert row.notes is None
        assert row.quotation_version == 3
        assert row.change_description == "Configuration cleared"

    def test_remove_always_appends(self, db_session, quotation, catalog):
        qc_service.remove_configuration(quotation, catalog.label.id)
        qc_service.remove_configuration(quotation, catalog.label.id)

        history = _rows(db_session, quotation.id, catalog.label.id)
        assert len(history) == 3
        _assert_single_current(db_session, quotation.id)

    def test_remove_without_row(self, db_session, quotation, catalog):
        with pytest.raises(NotFoundError):
            qc_service.remove_configuration(quotation, catalog.spare.id)


# =============================================================================
# ENDPOINTS
# =============================================================================


class TestConfigurationEndpoints:

    def test_save_update_clear_history(self, client, sales_headers, quotation, catalog):
        base = f"/api/quotations/{quotation.id}/configurations"

        saved = client.post(base, json={
            "configuration_id": catalog.motor.id,
            "selected_option_id": catalog.options.motor_large.id,
        }, headers=sales_headers)
        assert saved.status_code == 200
        assert saved.get_json()["selected_option"]["display_name"] == "11 kW"

        updated = client.put(f"{base}/{catalog.motor.id}", json={"notes": "urgent"}, headers=sales_headers)
        assert updated.status_code == 200
        assert updated.get_json()["quotation_version"] == 3

        cleared = client.delete(f"{base}/{catalog.motor.id}", headers=sales_headers)
        assert cleared.status_code == 200
        assert cleared.get_json()["change_description"] == "Configuration cleared"

        history = client.get(f"{base}/{catalog.motor.id}/history", headers=sales_headers)
        assert [r["quotation_version"] for r in history.get_json()["items"]] == [1, 2, 3, 4]

        current = client.get(base, headers=sales_headers).get_json()
        assert current["count"] == len(catalog.reachable_ids)

    def test_save_requires_configuration_id(self, client, sales_headers, quotation):
        resp = client.post(
            f"/api/quotations/{quotation.id}/configurations",
            json={"custom_value": "x"},
            headers=sales_headers,
        )
        assert resp.status_code == 400

    def test_unknown_option(self, client, sales_headers, quotation, catalog):
        resp = client.post(
            f"/api/quotations/{quotation.id}/configurations",
            json={"configuration_id": catalog.motor.id, "selected_option_id": 9999},
            headers=sales_headers,
        )
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Configuration option not found"

    def test_other_users_quotation(self, client, other_sales_headers, quotation, catalog):
        resp = client.post(
            f"/api/quotations/{quotation.id}/configurations",
            json={"configuration_id": catalog.label.id, "custom_value": "Hijack"},
            headers=other_sales_headers,
        )
        assert resp.status_code == 404
