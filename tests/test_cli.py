import pytest
from click.testing import CliRunner

from conftest import make_user
from nog_auth import cli as cli_module
from nog_auth.cli import cli
from src.admin.export import CSV_HEADER


@pytest.fixture
def runner(db_manager):
    return CliRunner()


def test_init_is_idempotent(runner):
    result = runner.invoke(cli, ["init"])
    assert result.exit_code == 0, result.output
    assert "Database initialized successfully" in result.output

    result = runner.invoke(cli, ["seed-rbac"])
    assert result.exit_code == 0
    assert "Seeded 0 permissions, 0 roles" in result.output


def test_user_create_and_list(runner):
    result = runner.invoke(cli, ["user", "list"])
    assert result.exit_code == 0
    assert "No users found." in result.output

    result = runner.invoke(cli, ["user", "create", "-e", "Ops@Example.com", "-n", "Ops", "-p", "ops-password",
                                 "-r", "admin", "--verified"])
    assert result.exit_code == 0, result.output
    assert "✓ User 'ops@example.com' created with ID:" in result.output
    assert "Role: admin | Verified: True" in result.output

    result = runner.invoke(cli, ["user", "create", "-e", "ops@example.com", "-n", "Ops", "-p", "ops-password"])
    assert result.exit_code != 0
    assert "User already exists" in result.output

    result = runner.invoke(cli, ["user", "list", "--search", "ops"])
    assert result.exit_code == 0
    assert "ops@example.com" in result.output
    assert "1 of 1 users" in result.output


def test_user_set_role(runner, db_manager):
    make_user(db_manager)
    result = runner.invoke(cli, ["user", "set-role", "alice@example.com", "editor,user"])
    assert result.exit_code == 0, result.output
    assert "now has role: editor,user" in result.output

    result = runner.invoke(cli, ["user", "set-role", "ghost@example.com", "admin"])
    assert result.exit_code != 0
    assert "User not found: ghost@example.com" in result.output


def test_role_and_permission_lists(runner):
    result = runner.invoke(cli, ["role", "list"])
    assert result.exit_code == 0
    assert "admin" in result.output
    assert "editor" in result.output

    result = runner.invoke(cli, ["permission", "list"])
    assert result.exit_code == 0
    assert "user:read" in result.output
    assert "role:write" in result.output


def test_export_users(runner, db_manager, tmp_path):
    make_user(db_manager)
    make_user(db_manager, email="bob@example.com", name="Bob")
    output = tmp_path / "users.csv"

    result = runner.invoke(cli, ["export-users", "-o", str(output)])
    assert result.exit_code == 0, result.output
    assert f"✓ Exported 2 users to {output}" in result.output

    lines = output.read_text(encoding="utf-8").splitlines()
    assert lines[0] == ",".join(CSV_HEADER)
    assert len(lines) == 3


def test_migrate_delegates_to_alembic(runner, monkeypatch):
    calls = []
    monkeypatch.setattr(cli_module, "run_migrations", lambda revision, downgrade: calls.append((revision, downgrade)))

    result = runner.invoke(cli, ["migrate"])
    assert result.exit_code == 0, result.output
    assert "Database schema is at head" in result.output

    runner.invoke(cli, ["migrate", "--downgrade=-1"])
    assert calls == [("head", None), ("head", "-1")]
