"""
test_config.py — Settings parsing and startup validation.
"""

import pytest
from conftest import ROOT

from autonomy.core.config import Settings
from autonomy.core.errors import FatalError


def _settings(**overrides) -> Settings:
    base = {"i18n_dir": str(ROOT / "i18n"), "_env_file": None}
    return Settings(**{**base, **overrides})


class TestParsing:
    def test_cors_origins(self):
        assert _settings(cors_origins_str="https://a.app, https://b.app,").cors_origins == [
            "https://a.app", "https://b.app",
        ]

    def test_confirm_collections(self):
        settings = _settings(confirm_collections_str="Taiwan:confirmTaiwan, broken ,Japan:")
        assert settings.confirm_collections == {"Taiwan": "confirmTaiwan"}


class TestValidateRequired:
    def test_development_defaults_are_accepted(self):
        _settings(environment="development").validate_required()

    def test_production_needs_secrets(self):
        with pytest.raises(FatalError, match="ONESIGNAL_APP_ID"):
            _settings(environment="production", onesignal_app_id="").validate_required()

    def test_production_with_secrets(self):
        _settings(
            environment="production", jwt_secret="s" * 32, onesignal_app_id="app", onesignal_api_key="key",
        ).validate_required()

    def test_missing_catalogs(self, tmp_path):
        (tmp_path / "en.yaml").write_text("notification: {}\n")
        with pytest.raises(FatalError, match="zh_tw.yaml"):
            _settings(i18n_dir=str(tmp_path)).validate_required()
