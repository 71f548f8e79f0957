"""
Tests for application settings and database helpers.
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from ruzio.core.config import Settings
from ruzio.database.connection import _convert_database_url_to_async, check_database_health


class TestSettings:
    """Test settings validation."""

    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)

        assert settings.display_number_prefix == "RUZ"
        assert settings.min_distance_km == Decimal("0.1")
        assert settings.max_customer_note_length == 200

    def test_default_secret_rejected_in_production(self) -> None:
        with pytest.raises(ValidationError):
            Settings(
                _env_file=None,
                environment="production",
                secret_key="dev-secret-key-change-in-production",
            )

    def test_unsupported_database_url(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, database_url="mysql://localhost/ruzio")

    def test_cors_origins_from_string(self) -> None:
        settings = Settings(
            _env_file=None, cors_origins="http://a.test, http://b.test"
        )

        assert settings.cors_origins == ["http://a.test", "http://b.test"]

    def test_sqlite_detection(self) -> None:
        settings = Settings(_env_file=None, database_url="sqlite+aiosqlite:///x.db")

        assert settings.is_sqlite


class TestDatabaseHelpers:
    """Test URL conversion and the health check."""

    def test_plain_postgres_url_uses_asyncpg(self) -> None:
        assert _convert_database_url_to_async("postgresql://u:p@h/db") == (
            "postgresql+asyncpg://u:p@h/db"
        )
        assert _convert_database_url_to_async("sqlite+aiosqlite:///x.db") == (
            "sqlite+aiosqlite:///x.db"
        )

    async def test_health_check_against_test_database(self, engine, monkeypatch) -> None:
        monkeypatch.setattr("ruzio.database.connection.get_engine", lambda: engine)

        assert await check_database_health(max_retries=1) is True
