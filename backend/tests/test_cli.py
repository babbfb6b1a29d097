# Overview: Pytest coverage for the Flask CLI command groups.

from datetime import timedelta

from bookwell.extensions import db
from bookwell.models import DataChange, Location, StaffLocation, StaffMember
from bookwell.time_utils import utcnow


class TestCatalogCommands:
    def test_seed_demo_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["catalog", "seed-demo"])
        assert first.exit_code == 0
        assert "locations: 2 created" in first.output
        counts = (
            db_session.query(Location).count(),
            db_session.query(StaffMember).count(),
            db_session.query(StaffLocation).count(),
        )

        second = runner.invoke(args=["catalog", "seed-demo"])
        assert second.exit_code == 0
        assert "locations: 0 created" in second.output
        assert counts == (
            db_session.query(Location).count(),
            db_session.query(StaffMember).count(),
            db_session.query(StaffLocation).count(),
        )

    def test_list_shows_staff_per_location(self, app, db_session):
        runner = app.test_cli_runner()
        assert "No locations found." in runner.invoke(args=["catalog", "list"]).output

        runner.invoke(args=["catalog", "seed-demo"])
        result = runner.invoke(args=["catalog", "list"])

        assert result.exit_code == 0
        assert "Downtown" in result.output
        assert "Sam Chen" in result.output


class TestMaintenanceCommands:
    def test_cleanup_changes(self, app, db_session):
        db.session.add_all([
            DataChange(entity_type="Appointment", entity_id="1", change_type="CREATE",
                       timestamp=utcnow() - timedelta(hours=5)),
            DataChange(entity_type="Appointment", entity_id="1", change_type="UPDATE",
                       timestamp=utcnow()),
        ])
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-changes", "--hours-to-keep", "2"])

        assert result.exit_code == 0
        assert "Deleted 1 change records" in result.output
        assert db_session.query(DataChange).count() == 1
