"""
tests/test_cli.py -- main.py subcommands against a temporary SQLite file.
"""

from __future__ import annotations

import json

import pytest

import main
from auth.store import UserStore


@pytest.fixture
def cli_settings(tmp_path, monkeypatch, settings_factory):
    settings = settings_factory(database_url=f"sqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setattr(main, "get_settings", lambda: settings)
    return settings


def _write_export(tmp_path, users) -> str:
    path = tmp_path / "export.json"
    path.write_text(json.dumps({"users": users}), encoding="utf-8")
    return str(path)


def test_import_command_prints_summary(tmp_path, cli_settings, capsys):
    path = _write_export(
        tmp_path,
        [
            {"id": "1", "name": "Amina Yusuf", "email": "amina@example.com"},
            {"id": "2", "name": "No Mail"},
        ],
    )

    assert main.main(["import", path]) == 0

    out = capsys.readouterr().out
    assert "Imported:     1" in out
    assert "Errors:       1" in out
    assert "User 'No Mail' has no email - skipped" in out
    store = UserStore(cli_settings.database_url)
    try:
        assert store.get_by_email("amina@example.com") is not None
    finally:
        store.close()


def test_import_command_json_output(tmp_path, cli_settings, capsys):
    path = _write_export(tmp_path, [{"id": "1", "name": "A", "email": "a@example.com"}])

    assert main.main(["import", path, "--json"]) == 0

    summary = json.loads(capsys.readouterr().out)
    assert summary["imported"] == 1
    assert summary["total"] == 1


def test_import_command_rejects_malformed_file(tmp_path, cli_settings, capsys):
    path = tmp_path / "bad.json"
    path.write_text('{"people": []}', encoding="utf-8")

    assert main.main(["import", str(path)]) == 1
    assert 'Expected "users" array' in capsys.readouterr().out


def test_import_command_missing_file(tmp_path, cli_settings, capsys):
    assert main.main(["import", str(tmp_path / "nope.json")]) == 1
    assert "is not a readable file" in capsys.readouterr().out


def test_create_admin(cli_settings, capsys):
    args = ["create-admin", "--login", "root", "--email", "Root@Example.org", "--password", "S3cret!pass"]

    assert main.main(args) == 0
    assert main.main(args) == 1

    store = UserStore(cli_settings.database_url)
    try:
        user = store.get_by_login("root")
        assert user.email == "root@example.org"
        assert user.roles == ["administrator"]
    finally:
        store.close()
