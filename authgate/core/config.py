"""
Configuration module for AuthGate.

The configuration object is passed explicitly into every component; no
component reads process-wide settings on its own.
"""

import json
import os
import re
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class LoginPolicy(str, Enum):
    """Who may log in after external authentication."""
    EXTERNAL_USERS = "external_users"  # any externally authenticated user self-registers
    APPROVED_USERS = "approved_users"  # invite only; others go to pending


class ViewPolicy(str, Enum):
    """Who may view the site."""
    EVERYONE = "everyone"
    LOGGED_IN_USERS = "logged_in_users"


class RedirectMode(str, Enum):
    """What anonymous visitors get on a restricted page."""
    LOGIN = "login"
    MESSAGE = "message"


class UpdateOnLogin(str, Enum):
    """Whether first/last name are refreshed from the provider on login."""
    NEVER = ""
    ALWAYS = "always"
    UPDATE_IF_EMPTY = "update-if-empty"


@dataclass
class ProviderSettings:
    """Settings for one external provider instance"""
    attr_update_on_login: UpdateOnLogin = UpdateOnLogin.NEVER
    sync_profile_photo: bool = False
    sync_profile_fields: bool = False
    custom_field_mappings: str = ""
    role_mappings: str = ""
    default_role: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderSettings":
        """Create provider settings from a mapping."""
        update = data.get("attr_update_on_login", "")
        # "1" is the legacy spelling of "always"
        if update in ("1", 1, True):
            update = UpdateOnLogin.ALWAYS.value
        return cls(
            attr_update_on_login=UpdateOnLogin(update or ""),
            sync_profile_photo=bool(data.get("sync_profile_photo", False)),
            sync_profile_fields=bool(data.get("sync_profile_fields", False)),
            custom_field_mappings=data.get("custom_field_mappings", "") or "",
            role_mappings=data.get("role_mappings", "") or "",
            default_role=data.get("default_role", "") or "",
        )


def provider_key(provider: str, server_id: Optional[int] = None) -> str:
    """Settings key for a provider instance; instance 1 carries no suffix."""
    if not server_id or int(server_id) == 1:
        return provider
    return f"{provider}_{server_id}"


@dataclass
class AuthGateConfig:
    """Configuration for an AuthGate deployment"""
    site_id: str = "1"
    site_name: str = "My Site"
    site_url: str = "https://example.com"
    login_url: str = "https://example.com/login"
    logout_url: str = "https://example.com/logout"
    settings_url: str = "https://example.com/admin/authgate"

    who_can_login: LoginPolicy = LoginPolicy.APPROVED_USERS
    who_can_view: ViewPolicy = ViewPolicy.EVERYONE
    default_role: str = "subscriber"
    access_redirect: RedirectMode = RedirectMode.LOGIN
    public_pages: List[str] = field(default_factory=list)
    public_warning: str = "warning"

    anonymous_message: str = "Notice: You are browsing this site anonymously, and only have access to a portion of its content."
    pending_message: str = "You're not currently allowed to view this site. Your administrator has been notified, and once they have approved your access, you will receive an email with instructions on how to log in."
    blocked_message: str = "You're not currently allowed to log into this site. If you think this is a mistake, please contact your administrator."

    role_receive_pending_emails: str = "administrator"
    users_receive_pending_emails: List[str] = field(default_factory=list)

    multisite: bool = False
    override_multisite: bool = False
    prevent_override_multisite: bool = False

    admin_roles: List[str] = field(default_factory=lambda: ["administrator"])
    usermeta_key: str = ""

    providers: Dict[str, ProviderSettings] = field(default_factory=dict)

    system_log_level: str = "basic"
    encryption_key: str = ""

    graph_base_url: str = "https://graph.microsoft.com/v1.0"
    graph_timeout: float = 30.0

    def __post_init__(self):
        if not self.encryption_key:
            self.encryption_key = os.getenv("AUTHGATE_ENCRYPTION_KEY", "")
        # Accept plain strings from files and environment
        self.who_can_login = LoginPolicy(self.who_can_login)
        self.who_can_view = ViewPolicy(self.who_can_view)
        self.access_redirect = RedirectMode(self.access_redirect)

    def provider_settings(self, provider: str, server_id: Optional[int] = None) -> ProviderSettings:
        """Get settings for a provider instance, or defaults if unconfigured."""
        return self.providers.get(provider_key(provider, server_id), ProviderSettings())

    @property
    def network_list_visible(self) -> bool:
        """Whether the network-scoped approved list applies to this site."""
        if not self.multisite:
            return False
        return not (self.override_multisite and not self.prevent_override_multisite)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthGateConfig":
        """Create configuration from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        providers = values.pop("providers", None) or {}
        values["providers"] = {
            name: settings if isinstance(settings, ProviderSettings) else ProviderSettings.from_dict(settings)
            for name, settings in providers.items()
        }
        return cls(**values)

    @classmethod
    def from_env(cls, prefix: str = "AUTHGATE_") -> "AuthGateConfig":
        """Create configuration from environment variables"""
        return cls(
            site_id=os.getenv(f"{prefix}SITE_ID", "1"),
            site_name=os.getenv(f"{prefix}SITE_NAME", "My Site"),
            site_url=os.getenv(f"{prefix}SITE_URL", "https://example.com"),
            login_url=os.getenv(f"{prefix}LOGIN_URL", "https://example.com/login"),
            logout_url=os.getenv(f"{prefix}LOGOUT_URL", "https://example.com/logout"),
            settings_url=os.getenv(f"{prefix}SETTINGS_URL", "https://example.com/admin/authgate"),
            who_can_login=os.getenv(f"{prefix}WHO_CAN_LOGIN", LoginPolicy.APPROVED_USERS.value),
            who_can_view=os.getenv(f"{prefix}WHO_CAN_VIEW", ViewPolicy.EVERYONE.value),
            default_role=os.getenv(f"{prefix}DEFAULT_ROLE", "subscriber"),
            access_redirect=os.getenv(f"{prefix}ACCESS_REDIRECT", RedirectMode.LOGIN.value),
            public_pages=_split_list(os.getenv(f"{prefix}PUBLIC_PAGES", "")),
            role_receive_pending_emails=os.getenv(f"{prefix}ROLE_RECEIVE_PENDING_EMAILS", "administrator"),
            users_receive_pending_emails=_split_list(os.getenv(f"{prefix}USERS_RECEIVE_PENDING_EMAILS", "")),
            multisite=os.getenv(f"{prefix}MULTISITE", "false").lower() in ("true", "1", "yes", "on"),
            system_log_level=os.getenv(f"{prefix}SYSTEM_LOG_LEVEL", "basic"),
            encryption_key=os.getenv(f"{prefix}ENCRYPTION_KEY", ""),
            graph_timeout=float(os.getenv(f"{prefix}GRAPH_TIMEOUT", "30")),
        )

    @classmethod
    def from_file(cls, file_path: str) -> "AuthGateConfig":
        """Load configuration from a JSON or YAML file, expanding ${VAR} references."""
        return cls.from_dict(expand_config_variables(load_config_file(file_path)))

    def validate(self) -> bool:
        """Validate the configuration"""
        if not self.site_id:
            raise ValueError("site_id is required")
        if not self.default_role:
            raise ValueError("default_role is required")
        if self.graph_timeout <= 0:
            raise ValueError("graph_timeout must be positive")
        if self.system_log_level not in ("none", "basic", "detailed", "debug"):
            raise ValueError(f"Unknown system_log_level: {self.system_log_level}")
        if self.public_warning not in ("warning", "no_warning"):
            raise ValueError(f"Unknown public_warning: {self.public_warning}")
        return True


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def load_config_file(file_path: str) -> Dict[str, Any]:
    """Load configuration from a file (JSON or YAML)."""
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    file_ext = Path(file_path).suffix.lower()

    with open(file_path, "r", encoding="utf-8") as f:
        if file_ext == ".json":
            return json.load(f)
        elif file_ext in (".yaml", ".yml"):
            import yaml
            return yaml.safe_load(f) or {}
        else:
            raise ValueError(f"Unsupported configuration file format: {file_ext}")


def expand_config_variables(config: Dict[str, Any],
                            variables: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Expand variables in configuration values.
    Variables are specified as ${VAR_NAME} in config values.
    """
    if variables is None:
        variables = dict(os.environ)

    def expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return re.sub(r"\$\{([^}]+)\}", lambda m: variables.get(m.group(1), m.group(0)), value)
        elif isinstance(value, dict):
            return {k: expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [expand_value(item) for item in value]
        return value

    return expand_value(config)
