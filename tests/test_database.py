"""Engine options per database backend."""

from sqlalchemy.pool import StaticPool

from sprintboard.database import engine_options


class TestEngineOptions:
    def test_in_memory_sqlite_shares_one_connection(self):
        options = engine_options("sqlite+aiosqlite:///:memory:")

        assert options["poolclass"] is StaticPool
        assert options["connect_args"] == {"check_same_thread": False}

    def test_file_sqlite_uses_default_pool(self):
        options = engine_options("sqlite+aiosqlite:///./sprintboard.db")

        assert "poolclass" not in options
        assert "pool_pre_ping" not in options

    def test_server_backends_ping_before_use(self):
        assert engine_options("postgresql+asyncpg://user:pw@localhost/sprintboard") == {"pool_pre_ping": True}
