"""
tests/test_config.py -- Settings validation and derived values.
"""

from __future__ import annotations

import pytest

from core.config import Settings
from gatekeeper.gate import GatekeeperConfig

KEY = "k" * 32


class TestSecretKey:
    def test_short_key_rejected(self) -> None:
        with pytest.raises(ValueError):
            Settings(secret_key="short")

    def test_missing_key_rejected_outside_debug(self) -> None:
        with pytest.raises(ValueError):
            Settings(secret_key="", debug=False)

    def test_missing_key_generated_in_debug(self) -> None:
        settings = Settings(secret_key="", debug=True)
        assert len(settings.secret_key) == 64


class TestDerived:
    def test_auth_limit_falls_back_to_global_window(self) -> None:
        settings = Settings(secret_key=KEY, auth_rate_limit_max=5, auth_rate_limit_window_ms=0, rate_limit_window_ms=30_000)
        assert settings.auth_rate_limit == (5, 30_000)

    def test_api_limit_falls_back_to_global(self) -> None:
        settings = Settings(secret_key=KEY, rate_limit_max=100, api_rate_limit_max=0, rate_limit_window_ms=60_000)
        assert settings.api_rate_limit == (100, 60_000)

    def test_production_enables_csp(self) -> None:
        settings = Settings(secret_key=KEY, environment="production")
        assert settings.is_production
        assert GatekeeperConfig.from_settings(settings).content_security_policy

    def test_development_has_no_csp(self) -> None:
        settings = Settings(secret_key=KEY, environment="development")
        assert not GatekeeperConfig.from_settings(settings).content_security_policy
