"""
Tests for configuration loading and validation.
"""

import json
import pytest

from authgate.core.config import (
    AuthGateConfig,
    LoginPolicy,
    ProviderSettings,
    RedirectMode,
    UpdateOnLogin,
    ViewPolicy,
    expand_config_variables,
    provider_key,
)


class TestAuthGateConfig:
    """Configuration object."""

    def test_defaults(self):
        config = AuthGateConfig()

        assert config.who_can_login == LoginPolicy.APPROVED_USERS
        assert config.who_can_view == ViewPolicy.EVERYONE
        assert config.default_role == "subscriber"
        assert config.validate()

    def test_from_dict_coerces_values(self):
        config = AuthGateConfig.from_dict({
            "site_name": "Library",
            "who_can_login": "external_users",
            "access_redirect": "message",
            "unknown_key": "ignored",
            "providers": {
                "oauth2_2": {"attr_update_on_login": "1", "sync_profile_photo": True},
            },
        })

        assert config.site_name == "Library"
        assert config.who_can_login == LoginPolicy.EXTERNAL_USERS
        assert config.access_redirect == RedirectMode.MESSAGE
        settings = config.provider_settings("oauth2", 2)
        assert settings.attr_update_on_login == UpdateOnLogin.ALWAYS
        assert settings.sync_profile_photo is True

    def test_provider_instance_suffix(self):
        assert provider_key("oauth2") == "oauth2"
        assert provider_key("oauth2", 1) == "oauth2"
        assert provider_key("oauth2", 3) == "oauth2_3"

    def test_unconfigured_provider_gets_defaults(self):
        assert AuthGateConfig().provider_settings("cas") == ProviderSettings()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("AUTHGATE_SITE_ID", "7")
        monkeypatch.setenv("AUTHGATE_WHO_CAN_VIEW", "logged_in_users")
        monkeypatch.setenv("AUTHGATE_PUBLIC_PAGES", "home, about,")
        monkeypatch.setenv("AUTHGATE_MULTISITE", "yes")

        config = AuthGateConfig.from_env()

        assert config.site_id == "7"
        assert config.who_can_view == ViewPolicy.LOGGED_IN_USERS
        assert config.public_pages == ["home", "about"]
        assert config.multisite is True

    def test_from_yaml_file_expands_variables(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SITE_SECRET", "s3cret")
        path = tmp_path / "authgate.yaml"
        path.write_text("site_name: Library\nencryption_key: ${SITE_SECRET}\npublic_pages:\n  - home\n")

        config = AuthGateConfig.from_file(str(path))

        assert config.site_name == "Library"
        assert config.encryption_key == "s3cret"
        assert config.public_pages == ["home"]

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "authgate.json"
        path.write_text(json.dumps({"default_role": "author"}))

        assert AuthGateConfig.from_file(str(path)).default_role == "author"

    def test_unsupported_file(self, tmp_path):
        path = tmp_path / "authgate.ini"
        path.write_text("[x]")

        with pytest.raises(ValueError):
            AuthGateConfig.from_file(str(path))

    def test_missing_variables_are_left_alone(self):
        assert expand_config_variables({"a": ["${NOPE}"]}, {}) == {"a": ["${NOPE}"]}

    @pytest.mark.parametrize("overrides", [
        {"site_id": ""},
        {"default_role": ""},
        {"graph_timeout": -1},
        {"system_log_level": "verbose"},
        {"public_warning": "loud"},
    ])
    def test_validate_rejects(self, overrides):
        with pytest.raises(ValueError):
            AuthGateConfig(**overrides).validate()

    def test_invalid_policy_rejected_at_construction(self):
        with pytest.raises(ValueError):
            AuthGateConfig(who_can_login="everybody")

    def test_network_list_visibility(self):
        assert not AuthGateConfig().network_list_visible
        assert AuthGateConfig(multisite=True).network_list_visible
        assert not AuthGateConfig(multisite=True, override_multisite=True).network_list_visible
        assert AuthGateConfig(
            multisite=True, override_multisite=True, prevent_override_multisite=True
        ).network_list_visible
