"""Unit tests for Settings."""

import pytest

from app.config import Settings


def make_settings(**overrides) -> Settings:
    values = {"database_url": "sqlite+aiosqlite:///:memory:"}
    values.update(overrides)
    return Settings(**values)


class TestDatabaseUrl:
    @pytest.mark.parametrize(
        "url,expected,dialect",
        [
            ("postgresql://u:p@db/calls", "postgresql+asyncpg://u:p@db/calls", "postgresql"),
            ("mysql://u:p@db/calls", "mysql+aiomysql://u:p@db/calls", "mysql"),
            ("sqlite:///./calls.db", "sqlite+aiosqlite:///./calls.db", "sqlite"),
            ("postgresql+asyncpg://u:p@db/calls", "postgresql+asyncpg://u:p@db/calls", "postgresql"),
        ],
    )
    def test_async_driver_prefix(self, url, expected, dialect):
        settings = make_settings(database_url=url)

        assert settings.async_database_url == expected
        assert settings.db_dialect == dialect


class TestUpstreamSettings:
    def test_default_endpoints_follow_account(self):
        settings = make_settings(
            upstream_account_id="RA9", upstream_base_url="https://api.test/v2/"
        )

        assert settings.call_log_endpoints == [
            "https://api.test/v2/RA9/calllogs",
            "https://api.test/v2/RA9/calls",
            "https://api.test/v2/RA9/reports/calls",
        ]

    def test_explicit_endpoints_win(self):
        settings = make_settings(upstream_endpoints=["https://a.test/x"])

        assert settings.call_log_endpoints == ["https://a.test/x"]

    def test_configured_requires_key_and_account(self):
        assert make_settings(upstream_api_key="k").upstream_configured is False
        assert (
            make_settings(upstream_api_key="k", upstream_account_id="RA9").upstream_configured
            is True
        )
