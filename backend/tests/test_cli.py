"""
CLI command tests (flask test_cli_runner).
"""

from datetime import timedelta

from compstock.models import Component, Notification, User
from compstock.services import notification_service
from compstock.time_utils import utcnow


class TestSystemCommands:

    def test_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init"])
        assert result.exit_code == 0
        assert db_session.query(User).count() == 4

        result = runner.invoke(args=["system", "init"])
        assert result.exit_code == 0
        assert "already exists" in result.output
        assert db_session.query(User).count() == 4


class TestUserCommands:

    def test_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create",
            "--username", "tech1", "--name", "Tech One",
            "--email", "tech1@lab.local", "--role", "engineer",
        ])
        assert result.exit_code == 0

        result = runner.invoke(args=["users", "list", "--role", "engineer"])
        assert result.exit_code == 0
        assert "tech1" in result.output

    def test_create_duplicate_fails(self, app, db_session, engineer):
        result = app.test_cli_runner().invoke(args=[
            "users", "create",
            "--username", "engineer", "--name", "Dup",
            "--email", "dup@lab.local", "--role", "engineer",
        ])
        assert result.exit_code != 0
        assert "already" in result.output


class TestAlertCommands:

    def test_check(self, app, db_session, make_component):
        make_component(quantity=1, critical_low_threshold=5)
        result = app.test_cli_runner().invoke(args=["alerts", "check"])
        assert result.exit_code == 0
        assert "Created 1 low stock and 0 old stock alert(s)." in result.output


class TestInventoryCommands:

    def test_export_then_import(self, app, db_session, make_component, admin_user, tmp_path):
        make_component(name="Crystal 16MHz", part_number="XTAL-16")
        out = tmp_path / "components.csv"

        runner = app.test_cli_runner()
        result = runner.invoke(args=["inventory", "export", "--output", str(out)])
        assert result.exit_code == 0
        assert "XTAL-16" in out.read_text(encoding="utf-8")

        # Same part numbers are still active, so every row is rejected
        result = runner.invoke(args=["inventory", "import", str(out), "--username", "admin"])
        assert result.exit_code == 0
        assert "Created 0 component(s), 1 row(s) rejected." in result.output
        assert db_session.query(Component).count() == 1

    def test_import_unknown_user(self, app, db_session, tmp_path):
        path = tmp_path / "parts.csv"
        path.write_text("Name,Part Number,Manufacturer\nDiode,1N4148,Vishay\n", encoding="utf-8")
        result = app.test_cli_runner().invoke(args=["inventory", "import", str(path), "--username", "ghost"])
        assert result.exit_code != 0
        assert "not found" in result.output


class TestMaintenanceCommands:

    def test_purge(self, app, db_session):
        notification = notification_service.create_notification({
            "title": "Old news",
            "message": "Long expired",
            "category": "system",
            "target_roles": ["admin"],
        })
        notification.expires_at = utcnow() - timedelta(days=60)
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["maintenance", "purge-notifications", "--grace-days", "30"])
        assert result.exit_code == 0
        assert "Deleted 1 expired notification(s)." in result.output
        assert db_session.query(Notification).count() == 0
