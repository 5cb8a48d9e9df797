"""
Unit tests for connection URL parsing and run configuration.
"""

import pytest

from dbdiff.config import DEFAULT_URL1, DatabaseURL, DiffConfig
from dbdiff.errors import ConfigError
from dbdiff.utils.retry import RetryPolicy


class TestDatabaseURL:
    """Test DatabaseURL.parse"""

    def test_default_dialect_is_postgresql(self):
        url = DatabaseURL.parse("app:secret@primary:5432")

        assert url.dialect == "postgresql"
        assert url.user == "app"
        assert url.password == "secret"
        assert url.host == "primary"
        assert url.port == 5432

    def test_password_is_optional(self):
        url = DatabaseURL.parse("app@primary:5432")

        assert url.user == "app"
        assert url.password == ""

    @pytest.mark.parametrize(
        "scheme,dialect",
        [
            ("postgres", "postgresql"),
            ("postgresql", "postgresql"),
            ("pg", "postgresql"),
            ("mssql", "sqlserver"),
            ("sqlserver", "sqlserver"),
            ("SQLServer", "sqlserver"),
            ("mysql", "mysql"),
            ("mariadb", "mysql"),
            ("TiDB", "mysql"),
        ],
    )
    def test_dialect_aliases(self, scheme, dialect):
        assert DatabaseURL.parse(f"{scheme}://sa:pw@db:1433").dialect == dialect

    def test_default_side1_is_local_tidb(self):
        url = DatabaseURL.parse(DEFAULT_URL1)

        assert (url.dialect, url.user, url.password, url.host, url.port) == (
            "mysql", "root", "", "127.0.0.1", 4000
        )

    def test_sqlite_directory(self):
        url = DatabaseURL.parse("sqlite:///var/lib/dbdiff/side1")

        assert url.dialect == "sqlite"
        assert url.path == "/var/lib/dbdiff/side1"

    @pytest.mark.parametrize(
        "value",
        [
            "primary:5432",
            "app:secret@primary",
            "app:secret@primary:port",
            "app:secret@:5432",
            "app:se:cret@primary:5432",
            "app@secret@primary:5432",
            "app:secret@primary:5432:1",
            "app:secret@primary:0",
            "app:secret@primary:70000",
        ],
    )
    def test_malformed(self, value):
        with pytest.raises(ConfigError, match="user\\[:password\\]@host:port"):
            DatabaseURL.parse(value)

    def test_empty(self):
        with pytest.raises(ConfigError, match="empty"):
            DatabaseURL.parse("")

    def test_unknown_dialect(self):
        with pytest.raises(ConfigError, match="unsupported dialect 'oracle'"):
            DatabaseURL.parse("oracle://scott:tiger@db:1521")

    def test_sqlite_needs_path(self):
        with pytest.raises(ConfigError, match="directory"):
            DatabaseURL.parse("sqlite://")

    def test_display_hides_password(self):
        url = DatabaseURL.parse("mssql://sa:hunter2@db:1433")

        assert url.display() == "sqlserver://sa@db:1433"
        assert "hunter2" not in repr(url)


class TestDiffConfig:
    """Test DiffConfig.validate"""

    def test_defaults_are_valid(self):
        config = DiffConfig()

        assert config.validate() is config
        assert config.fail_fast is True
        assert config.narrow is True
        assert config.checksum_mode == "auto"

    @pytest.mark.parametrize(
        "field",
        ["chunk_size", "concurrency", "max_divergences", "fetch_batch_size", "narrow_floor_rows"],
    )
    def test_positive_options(self, field):
        with pytest.raises(ConfigError, match=field):
            DiffConfig(**{field: 0}).validate()

    def test_negative_depth(self):
        with pytest.raises(ConfigError, match="max_depth"):
            DiffConfig(max_depth=-1).validate()

    def test_zero_depth_allowed(self):
        DiffConfig(max_depth=0).validate()

    def test_timeouts(self):
        with pytest.raises(ConfigError, match="query_timeout"):
            DiffConfig(query_timeout=0).validate()
        with pytest.raises(ConfigError, match="table_timeout"):
            DiffConfig(table_timeout=-5).validate()

    def test_checksum_mode(self):
        with pytest.raises(ConfigError, match="checksum_mode"):
            DiffConfig(checksum_mode="fast").validate()

    def test_negative_retries(self):
        with pytest.raises(ConfigError, match="max_retries"):
            DiffConfig(retry=RetryPolicy(max_retries=-1)).validate()

    def test_frozen(self):
        with pytest.raises(AttributeError):
            DiffConfig().chunk_size = 10  # type: ignore[misc]
