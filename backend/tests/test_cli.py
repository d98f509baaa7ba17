# Overview: Pytest coverage for the Flask CLI bootstrap commands.

from stockflow.models import Location, User
from stockflow.services.credential_service import verify_credential

from conftest import TEST_PASSWORD


class TestCli:

    def test_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["system", "init"])
        assert result.exit_code == 0
        assert "PASS Schema ready" in result.output

    def test_create_location_and_user(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["locations", "create", "--name", "Main Warehouse", "--type", "Warehouse"])
        assert result.exit_code == 0, result.output
        location = db_session.query(Location).filter_by(name="Main Warehouse").one()
        assert location.type == "Warehouse"

        result = runner.invoke(args=[
            "users", "create",
            "--username", "clerk",
            "--email", "clerk@stockflow.test",
            "--password", TEST_PASSWORD,
            "--role", "staff",
            "--location-id", str(location.id),
        ])
        assert result.exit_code == 0, result.output
        user = db_session.query(User).filter_by(username="clerk").one()
        assert user.location_ids() == [location.id]

        result = runner.invoke(args=["users", "list"])
        assert "clerk" in result.output

    def test_duplicate_location(self, app, db_session, location_1):
        result = app.test_cli_runner().invoke(args=["locations", "create", "--name", location_1.name])
        assert result.exit_code != 0
        assert "already exists" in result.output

    def test_weak_password_rejected(self, app, db_session):
        result = app.test_cli_runner().invoke(args=[
            "users", "create",
            "--username", "weak",
            "--email", "weak@stockflow.test",
            "--password", "weak",
            "--role", "staff",
        ])
        assert result.exit_code != 0
        assert "at least 8 characters" in result.output
        assert db_session.query(User).filter_by(username="weak").first() is None

    def test_issue_credential(self, app, db_session, manager_user):
        result = app.test_cli_runner().invoke(args=["credentials", "issue", "--username", "manager"])
        assert result.exit_code == 0
        principal = verify_credential(result.output.strip())
        assert principal.user_id == manager_user.id
        assert principal.role == "manager"
