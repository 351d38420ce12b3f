"""
Pytest tests for environment-driven configuration.
"""

import logging
import os

import pytest

from rental_config import RentalConfig


class TestRentalConfig:
    """Defaults and CAR_RENTAL_* overrides"""

    def test_defaults(self, monkeypatch):
        for name in list(os.environ):
            if name.startswith("CAR_RENTAL_"):
                monkeypatch.delenv(name)
        config = RentalConfig.from_env()
        assert config.cars_path == os.path.join(".", "cars.txt")
        assert config.users_path == os.path.join(".", "users.dat")
        assert config.seed_defaults is True
        assert config.get_log_level() == logging.WARNING

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CAR_RENTAL_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("CAR_RENTAL_CARS_FILE", "fleet.txt")
        monkeypatch.setenv("CAR_RENTAL_BOOKING_LOG", "updates.log")
        monkeypatch.setenv("CAR_RENTAL_LOG_LEVEL", "debug")
        monkeypatch.setenv("CAR_RENTAL_SEED_DEFAULTS", "false")
        config = RentalConfig.from_env()
        assert config.cars_path == str(tmp_path / "fleet.txt")
        assert config.booking_log_path == str(tmp_path / "updates.log")
        assert config.get_log_level() == logging.DEBUG
        assert config.seed_defaults is False

    @pytest.mark.parametrize("value, expected", [
        ("true", True), ("1", True), ("YES", True), (" on ", True),
        ("false", False), ("0", False), ("no", False),
    ])
    def test_seed_switch_spellings(self, monkeypatch, value, expected):
        monkeypatch.setenv("CAR_RENTAL_SEED_DEFAULTS", value)
        assert RentalConfig.from_env().seed_defaults is expected

    def test_unknown_log_level_falls_back(self):
        assert RentalConfig(log_level="CHATTY").get_log_level() == logging.WARNING
