# tests/test_config.py
"""Tests for pagebot/config.py and the migration file discovery."""
from __future__ import annotations

import pytest

from pagebot.config import Settings, validate_or_warn, warn_on_risky_config
from pagebot.infra.migrations_async import pending_files


class TestSettings:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.store_backend == "memory"
        assert s.graph_api_version == "v18.0"
        assert s.default_verify_token == "my_verify_token"
        assert s.atomic_campaign_counters is True

    def test_production_requires_admin_token(self):
        s = Settings(_env_file=None, app_env="prod", admin_token=None)
        assert s.validate_required_for_production() == ["admin_token"]
        with pytest.raises(RuntimeError):
            validate_or_warn(s)

    def test_production_postgres_requires_database_url(self):
        s = Settings(_env_file=None, app_env="prod", admin_token="x", store_backend="postgres")
        assert s.validate_required_for_production() == ["database_url"]

    def test_dev_never_missing(self):
        assert Settings(_env_file=None, app_env="dev").validate_required_for_production() == []

    def test_legacy_counters_warn(self):
        s = Settings(_env_file=None, atomic_campaign_counters=False, admin_token="x")
        assert any("atomic_campaign_counters" in w for w in warn_on_risky_config(s))


class TestPendingMigrations:
    def test_filename_order_and_applied_skipped(self, tmp_path):
        for name in ("002_b.sql", "001_a.sql", "003_c.sql", "notes.txt"):
            (tmp_path / name).write_text("SELECT 1;", encoding="utf-8")

        result = pending_files({"002_b.sql"}, sql_dir=tmp_path)
        assert [p.name for p in result] == ["001_a.sql", "003_c.sql"]

    def test_bundled_migrations_present(self):
        assert "001_kv_store.sql" in [p.name for p in pending_files(set())]
