"""
Unit tests for ConnectionConfig.
"""


import pytest
from psycopg.conninfo import conninfo_to_dict
from pydantic import ValidationError

from pgkit.config import ConnectionConfig


class TestConnectionConfigFromEnv:
    """Tests for ConnectionConfig.from_env()."""

    def test_reads_libpq_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PGHOST", "db.example.com")
        monkeypatch.setenv("PGPORT", "6543")
        monkeypatch.setenv("PGUSER", "provisioner")
        monkeypatch.setenv("PGPASSWORD", "s3cret")
        monkeypatch.setenv("PGDATABASE", "maintenance")

        config = ConnectionConfig.from_env()

        assert config.host == "db.example.com"
        assert config.port == 6543
        assert config.user == "provisioner"
        assert config.password.get_secret_value() == "s3cret"
        assert config.database == "maintenance"

    def test_overrides_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PGHOST", "db.example.com")

        assert ConnectionConfig.from_env(host="other").host == "other"

    def test_invalid_port_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PGPORT", "70000")

        with pytest.raises(ValidationError):
            ConnectionConfig.from_env()


class TestConnectionConfigConninfo:
    """Tests for conninfo() and describe()."""

    def test_conninfo(self) -> None:
        config = ConnectionConfig(host="db", user="alice", password="pw", database="postgres")

        params = conninfo_to_dict(config.conninfo())

        assert params["host"] == "db"
        assert params["user"] == "alice"
        assert params["password"] == "pw"
        assert params["dbname"] == "postgres"
        assert params["application_name"] == "pgkit"

    def test_conninfo_database_override(self) -> None:
        config = ConnectionConfig(host="db")
        assert conninfo_to_dict(config.conninfo("mydb"))["dbname"] == "mydb"

    def test_unset_values_omitted(self) -> None:
        params = conninfo_to_dict(ConnectionConfig().conninfo())
        assert "host" not in params
        assert "password" not in params

    def test_describe_hides_password(self) -> None:
        config = ConnectionConfig(host="db", user="alice", password="pw")

        assert config.describe() == "alice@db:5432/postgres"
        assert "pw" not in repr(config)
