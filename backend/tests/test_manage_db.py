"""Tests for the database management utility."""

import pytest
from sqlalchemy import select

import manage_db
from portam.config import settings
from portam.database import DatabaseManager, ZoneDB


@pytest.fixture
def datastore_url(tmp_path, monkeypatch):
    """Point the default datastore at a temporary SQLite file."""
    url = f"sqlite:///{tmp_path / 'portam_cli.db'}"
    monkeypatch.setattr(settings, "DATABASE_URL", url)
    return url


class TestDefaultDatastore:

    def test_manager_defaults_to_settings(self, datastore_url, monkeypatch):
        monkeypatch.setattr(settings, "DB_TIMEOUT_SECONDS", 3)
        db = DatabaseManager()
        try:
            assert db.database_url == datastore_url
        finally:
            db.engine.dispose()

    def test_explicit_url_wins(self, datastore_url, tmp_path):
        url = f"sqlite:///{tmp_path / 'other.db'}"
        db = DatabaseManager(url)
        try:
            assert db.database_url == url
        finally:
            db.engine.dispose()


class TestCommands:

    def test_show_network_formats_missing_values(self, datastore_url, capsys):
        DatabaseManager().init_default_network()

        manage_db.show_network()

        out = capsys.readouterr().out
        assert "T-casual" in out
        # T-usual has unlimited uses, T-dia has no free transfer window
        usual = next(line for line in out.splitlines() if "T-usual" in line)
        dia = next(line for line in out.splitlines() if "T-dia" in line)
        assert usual.split()[3] == "-"
        assert dia.split()[5] == "-"

    def test_add_zone_warns_about_running_servers(self, datastore_url, monkeypatch, capsys):
        answers = iter(["42", "Outer ring"])
        monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))

        manage_db.add_new_zone()

        out = capsys.readouterr().out
        assert "Zone 42 added successfully" in out
        assert f"within {settings.ZONES_CACHE_TTL}s" in out
        db = DatabaseManager()
        try:
            with db.transaction() as session:
                assert session.scalar(select(ZoneDB.name).where(ZoneDB.id == 42)) == "Outer ring"
        finally:
            db.engine.dispose()
