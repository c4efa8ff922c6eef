import pytest

from lpgtrack.models import Cylinder, CylinderMovement
from lpgtrack.services import cylinder_service
from lpgtrack.services.concurrency import StaleStateConflict
from lpgtrack.services.lifecycle_service import CylinderSnapshot, InvalidTransitionError
from lpgtrack.validation import ConflictError, NotFoundError, ValidationError


class TestIssueCylinder:

    def test_issue_derives_identifier_from_scan(self, make_cylinder):
        cylinder = make_cylinder("Q.C PASSED   05285awi1es04", weight_kg="2.7", unit_cost="1000")
        assert cylinder.identifier == "LPG-05285AWI1ES04"
        assert cylinder.qr_code == "05285AWI1ES04"
        assert cylinder.status == "available"
        assert cylinder.unit_cost_cents == 100000
        assert cylinder.to_dict()["weight_kg"] == 2.7

    def test_prefixed_and_bare_codes_collide(self, make_cylinder):
        make_cylinder("abc123")
        with pytest.raises(ConflictError, match="already exists"):
            make_cylinder("LPG-ABC123")

    def test_rejects_payload_without_alphanumerics(self, make_cylinder):
        with pytest.raises(ValidationError, match="letter or digit"):
            make_cylinder("***")
        with pytest.raises(ValidationError):
            make_cylinder("   ")

    @pytest.mark.parametrize("weight", ["12", 0, -11, "heavy", True])
    def test_rejects_non_standard_weight(self, make_cylinder, weight):
        with pytest.raises(ValidationError, match="weight_kg"):
            make_cylinder(weight_kg=weight)

    @pytest.mark.parametrize("cost", ["-1", "abc", None, "1e12"])
    def test_rejects_bad_cost(self, make_cylinder, cost):
        with pytest.raises(ValidationError, match="unit_cost"):
            make_cylinder(unit_cost=cost)

    def test_supplier_is_optional_and_stripped(self, make_cylinder):
        assert make_cylinder("A1").supplier is None
        assert make_cylinder("A2", supplier="  Solane ").supplier == "Solane"


class TestLookup:

    def test_lookup_by_noisy_scan(self, make_cylinder):
        cylinder = make_cylinder("05285AWI1ES04")
        assert cylinder_service.lookup_cylinder("Q.C PASSED   05285AWI1ES04").id == cylinder.id
        assert cylinder_service.lookup_cylinder("lpg-05285awi1es04").id == cylinder.id
        assert cylinder_service.lookup_cylinder("unknown") is None
        assert cylinder_service.lookup_cylinder("") is None

    def test_check_qr(self, make_cylinder):
        make_cylinder("X9")
        found = cylinder_service.check_qr("QC OK x9")
        assert found["exists"] is True
        assert found["cylinder"]["status"] == "available"
        assert found["qr_code"] == "x9"
        assert found["identifier"] == "LPG-X9"

        missing = cylinder_service.check_qr("nope")
        assert missing == {"exists": False, "cylinder": None, "qr_code": "nope", "identifier": "LPG-NOPE"}

    def test_get_cylinder_miss(self, db_session):
        with pytest.raises(NotFoundError):
            cylinder_service.get_cylinder("LPG-NONE")


class TestApplyTransition:

    def test_status_and_movement_written_together(self, db_session, make_cylinder):
        cylinder = make_cylinder("S1")

        row = cylinder_service.apply_transition(
            "S1", "sold", "sale", reason="Customer purchase", reference_number="OR-7"
        )

        assert row.id is not None
        assert row.product_identifier == "LPG-S1"
        assert row.from_status == "available"
        assert row.to_status == "sold"
        assert row.reference_number == "OR-7"

        db_session.expire_all()
        stored = db_session.get(Cylinder, cylinder.id)
        assert stored.status == "sold"
        assert db_session.query(CylinderMovement).count() == 1

    def test_chain_of_movements_keeps_invariant(self, db_session, make_cylinder):
        make_cylinder("S2")
        path = ["maintenance", "available", "sold", "missing", "available", "damaged"]
        for target in path:
            cylinder_service.apply_transition("S2", target, "status_change")

        movements = cylinder_service.list_movements(identifier="S2")
        assert [m.to_status for m in reversed(movements)] == path
        # Each movement starts where the previous one ended
        previous = "available"
        for m in reversed(movements):
            assert m.from_status == previous
            previous = m.to_status
        assert cylinder_service.get_cylinder("S2").status == previous

    def test_no_op_writes_nothing(self, db_session, make_cylinder):
        make_cylinder("S3")
        with pytest.raises(InvalidTransitionError):
            cylinder_service.apply_transition("S3", "available", "status_change")
        assert db_session.query(CylinderMovement).count() == 0

    def test_validation_error_writes_nothing(self, db_session, make_cylinder):
        make_cylinder("S4")
        with pytest.raises(ValidationError):
            cylinder_service.apply_transition("S4", "stolen", "lost")
        assert db_session.query(CylinderMovement).count() == 0
        assert cylinder_service.get_cylinder("S4").status == "available"

    def test_unknown_cylinder(self, db_session):
        with pytest.raises(NotFoundError):
            cylinder_service.apply_transition("LPG-GHOST", "sold", "sale")
        with pytest.raises(NotFoundError):
            cylinder_service.apply_transition("***", "sold", "sale")

    def test_rejected_transition_releases_the_row(self, db_session, make_cylinder):
        make_cylinder("S7")
        with pytest.raises(ValidationError):
            cylinder_service.apply_transition("S7", "stolen", "lost")
        assert not db_session().in_transaction()

        with pytest.raises(StaleStateConflict):
            cylinder_service.apply_transition("S7", "sold", "sale", expected_status="damaged")
        assert not db_session().in_transaction()

    def test_unknown_expected_status_is_a_validation_error(self, db_session, make_cylinder):
        make_cylinder("S8")
        with pytest.raises(ValidationError, match="Invalid expected_status"):
            cylinder_service.transition_cylinder("S8", "sold", "sale", expected_status="stolen")
        assert cylinder_service.get_cylinder("S8").status == "available"

    def test_transition_resolves_scans_like_lookup(self, db_session, make_cylinder):
        make_cylinder("ABC")
        scan = "ABC ı"
        assert cylinder_service.lookup_cylinder(scan).identifier == "LPG-ABC"

        movement = cylinder_service.apply_transition(scan, "sold", "sale")
        assert movement.product_identifier == "LPG-ABC"
        assert [m.id for m in cylinder_service.list_movements(identifier=scan)] == [movement.id]

    def test_expected_status_mismatch(self, db_session, make_cylinder):
        make_cylinder("S5")
        cylinder_service.apply_transition("S5", "maintenance", "maintenance")

        with pytest.raises(StaleStateConflict) as excinfo:
            cylinder_service.transition_cylinder("S5", "sold", "sale", expected_status="available")

        assert excinfo.value.actual_status == "maintenance"
        assert db_session.query(CylinderMovement).count() == 1

    def test_stale_snapshot_is_rejected_by_conditional_update(self, db_session, make_cylinder, monkeypatch):
        make_cylinder("S6")
        cylinder_service.apply_transition("S6", "maintenance", "maintenance")

        # Simulate a reader that saw the cylinder before the maintenance move
        monkeypatch.setattr(
            cylinder_service, "snapshot",
            lambda c: CylinderSnapshot(identifier=c.identifier, status="available"),
        )

        with pytest.raises(StaleStateConflict) as excinfo:
            cylinder_service.apply_transition("S6", "sold", "sale")

        assert excinfo.value.expected_status == "available"
        assert excinfo.value.actual_status == "maintenance"
        assert db_session.query(CylinderMovement).count() == 1
        assert cylinder_service.get_cylinder("S6").status == "maintenance"

    def test_transition_retries_once_with_fresh_snapshot(self, db_session, make_cylinder, monkeypatch):
        make_cylinder("S7")
        cylinder_service.apply_transition("S7", "maintenance", "maintenance")

        real_snapshot = cylinder_service.snapshot
        calls = []

        def flaky_snapshot(cylinder):
            calls.append(cylinder.identifier)
            if len(calls) == 1:
                return CylinderSnapshot(identifier=cylinder.identifier, status="available")
            return real_snapshot(cylinder)

        monkeypatch.setattr(cylinder_service, "snapshot", flaky_snapshot)

        row = cylinder_service.transition_cylinder("S7", "sold", "sale")

        assert len(calls) == 2
        assert row.from_status == "maintenance"
        assert row.to_status == "sold"

    def test_transition_gives_up_after_one_retry(self, db_session, make_cylinder, monkeypatch):
        make_cylinder("S8")
        cylinder_service.apply_transition("S8", "damaged", "damage")
        monkeypatch.setattr(
            cylinder_service, "snapshot",
            lambda c: CylinderSnapshot(identifier=c.identifier, status="available"),
        )

        with pytest.raises(StaleStateConflict):
            cylinder_service.transition_cylinder("S8", "sold", "sale")


class TestListingsAndSummary:

    def _seed(self, make_cylinder):
        make_cylinder("W1", weight_kg=11, unit_cost="100")
        make_cylinder("W2", weight_kg=11, unit_cost="200")
        make_cylinder("W3", weight_kg=50, unit_cost="900.50")
        make_cylinder("W4", weight_kg="2.7", unit_cost="50")
        cylinder_service.apply_transition("W2", "sold", "sale")
        cylinder_service.apply_transition("W3", "damaged", "damage")

    def test_list_filters(self, db_session, make_cylinder):
        self._seed(make_cylinder)

        assert cylinder_service.list_cylinders()["count"] == 4
        available = cylinder_service.list_cylinders(status="available")
        assert {c["identifier"] for c in available["items"]} == {"LPG-W1", "LPG-W4"}
        eleven = cylinder_service.list_cylinders(weight_kg="11")
        assert {c["identifier"] for c in eleven["items"]} == {"LPG-W1", "LPG-W2"}

        with pytest.raises(ValidationError):
            cylinder_service.list_cylinders(status="stolen")

    def test_pagination(self, db_session, make_cylinder):
        self._seed(make_cylinder)
        result = cylinder_service.list_cylinders(page=2, per_page=3)
        assert result["count"] == 1
        assert result["pagination"] == {
            "page": 2,
            "per_page": 3,
            "total": 4,
            "total_pages": 2,
            "has_next": False,
            "has_prev": True,
        }

    def test_movement_filters(self, db_session, make_cylinder):
        self._seed(make_cylinder)
        assert len(cylinder_service.list_movements()) == 2
        assert [m.product_identifier for m in cylinder_service.list_movements(to_status="sold")] == ["LPG-W2"]
        assert [m.product_identifier for m in cylinder_service.list_movements(weight_kg=50)] == ["LPG-W3"]
        assert len(cylinder_service.list_movements(limit=1)) == 1

    def test_summary(self, db_session, make_cylinder):
        self._seed(make_cylinder)
        summary = cylinder_service.cylinder_summary()

        assert summary["total"] == 4
        assert summary["by_status"] == {
            "available": 2,
            "damaged": 1,
            "maintenance": 0,
            "missing": 0,
            "sold": 1,
        }
        assert summary["available_value_cents"] == 15000
        assert [w["weight_kg"] for w in summary["by_weight"]] == [2.7, 11.0, 50.0]
        eleven = summary["by_weight"][1]
        assert eleven["total"] == 2
        assert eleven["by_status"] == {"available": 1, "sold": 1}
