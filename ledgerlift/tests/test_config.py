"""Tests for settings and the shared database instance."""

from unittest.mock import patch

from ledgerlift.config import Settings, settings
from ledgerlift.db import sqlite


class TestSettings:
    """Test settings defaults and the config printout."""

    def test_pipeline_defaults(self):
        fresh = Settings(_env_file=None)
        assert fresh.regex_min_transactions == 5
        assert fresh.chunk_size == 2000
        assert fresh.chunk_overlap == 200
        assert fresh.review_confidence_threshold == 0.5
        assert fresh.date_order == "dmy"
        assert fresh.amount_position == "first"

    def test_db_path_follows_mode(self, tmp_path):
        dev = Settings(_env_file=None, data_dir=tmp_path, dev_mode=True)
        prod = Settings(_env_file=None, data_dir=tmp_path, dev_mode=False)
        assert dev.db_path == tmp_path / "ledgerlift_dev.db"
        assert prod.db_path == tmp_path / "ledgerlift_prod.db"

    def test_log_config_redacts_keys(self, capsys):
        config = Settings(_env_file=None, openai_api_key="sk-abcdefghijklmnop")
        config.log_config()
        out = capsys.readouterr().out
        assert "sk-abcdefghijklmnop" not in out
        assert "✓ Set (sk-a...mnop)" in out
        assert "✗ Not set" in out


class TestGetDb:
    """Test the lazily created shared database."""

    def test_created_once_at_configured_path(self, tmp_path):
        with patch.object(settings, "data_dir", tmp_path / "data"):
            with patch.object(sqlite, "_db", None):
                first = sqlite.get_db()
                second = sqlite.get_db()

        assert first is second
        assert first.db_path.parent == tmp_path / "data"
        assert first.db_path.exists()
