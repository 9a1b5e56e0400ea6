"""Client configuration from YAML files or environment variables.

YAML layout (all sections optional, environment variables are expanded
using ${VAR_NAME} or ${VAR_NAME:-default} syntax):

    forcelink:
      auth:
        client_id: ${SF_CLIENT_ID}
        client_secret: ${SF_CLIENT_SECRET}
        refresh_token: ${SF_REFRESH_TOKEN}
        sandbox: false
      connection:
        api_version: "59.0"
        timeout_seconds: 120
        max_concurrent: 20
      retry:
        max_attempts: 3
        base_delay: 1.0
        max_delay: 30.0
      bulk:
        poll_interval: 5.0
"""

import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from forcelink.errors.exceptions import ConfigurationError
from forcelink.resilience.retry import RetryPolicy, coerce_bool, coerce_statuses

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "59.0"
LOGIN_URL = "https://login.salesforce.com"
SANDBOX_LOGIN_URL = "https://test.salesforce.com"
TOKEN_PATH = "/services/oauth2/token"

ENV_PREFIX = "FORCELINK_"

# YAML sections that are flattened into ClientConfig fields
_SECTIONS = ("auth", "connection", "retry", "bulk")

# Retry section keys that map to differently named fields
_RETRY_KEYS = {
    "max_attempts": "max_attempts",
    "base_delay": "retry_base_delay",
    "max_delay": "retry_max_delay",
    "jitter": "retry_jitter",
    "respect_retry_after": "respect_retry_after",
    "non_retryable_statuses": "non_retryable_statuses",
}


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


@dataclass
class ClientConfig:
    """Connection, authentication and retry settings for one org.

    Exactly one authentication method is used, in this order of precedence:
    refresh token, username/password, pre-issued access token.
    """

    # Authentication
    client_id: str = ""
    client_secret: str = field(default="", repr=False)
    username: str = ""
    password: str = field(default="", repr=False)
    security_token: str = field(default="", repr=False)
    refresh_token: str = field(default="", repr=False)
    access_token: str = field(default="", repr=False)
    instance_url: str = ""
    token_url: str = ""
    sandbox: bool = False
    domain: str = ""

    # Connection
    api_version: str = DEFAULT_API_VERSION
    timeout_seconds: float = 120.0
    max_concurrent: int = 20
    refresh_buffer_seconds: int = 300

    # Retry
    max_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    retry_jitter: float = 0.2
    respect_retry_after: bool = True
    non_retryable_statuses: frozenset[int] = field(default_factory=frozenset)

    # Bulk
    poll_interval: float = 5.0

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        for name in (
            "client_id",
            "client_secret",
            "username",
            "password",
            "security_token",
            "refresh_token",
            "access_token",
            "instance_url",
            "token_url",
            "domain",
        ):
            value = getattr(self, name)
            setattr(self, name, "" if value is None else str(value).strip())
        self.api_version = str(self.api_version).lstrip("v")
        self.sandbox = coerce_bool(self.sandbox)
        self.timeout_seconds = float(self.timeout_seconds)
        self.max_concurrent = int(self.max_concurrent)
        self.refresh_buffer_seconds = int(self.refresh_buffer_seconds)
        self.max_attempts = int(self.max_attempts)
        self.retry_base_delay = float(self.retry_base_delay)
        self.retry_max_delay = float(self.retry_max_delay)
        self.retry_jitter = float(self.retry_jitter)
        self.respect_retry_after = coerce_bool(self.respect_retry_after)
        self.non_retryable_statuses = coerce_statuses(self.non_retryable_statuses)
        self.poll_interval = float(self.poll_interval)

    @property
    def auth_method(self) -> str | None:
        """Name of the authentication method that will be used, or None."""
        if self.refresh_token:
            return "refresh_token"
        if self.username and self.password:
            return "password"
        if self.access_token:
            return "token"
        return None

    @property
    def login_url(self) -> str:
        if self.domain:
            return f"https://{self.domain}.my.salesforce.com"
        return SANDBOX_LOGIN_URL if self.sandbox else LOGIN_URL

    @property
    def resolved_token_url(self) -> str:
        return self.token_url or f"{self.login_url}{TOKEN_PATH}"

    @property
    def resolved_instance_url(self) -> str:
        if self.instance_url:
            return self.instance_url.rstrip("/")
        if self.domain:
            return self.login_url
        return ""

    def validate(self) -> None:
        """Validate configuration for correctness and constraints.

        Raises:
            ConfigurationError: If no usable authentication method is configured
                or a numeric setting is out of range
        """
        method = self.auth_method
        if method is None:
            raise ConfigurationError(
                "Authentication required: provide refresh token, "
                "username/password, or access token"
            )
        if method in ("refresh_token", "password") and not self.client_id:
            raise ConfigurationError("client_id required for OAuth flows")
        if method == "token" and not self.resolved_instance_url:
            raise ConfigurationError(
                "instance_url required when using direct access token"
            )
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive")
        if self.max_concurrent < 1:
            raise ConfigurationError("max_concurrent must be at least 1")
        if self.poll_interval <= 0:
            raise ConfigurationError("poll_interval must be positive")
        if not re.fullmatch(r"\d+\.\d+", self.api_version):
            raise ConfigurationError(
                f"api_version must look like '59.0', got {self.api_version!r}"
            )
        # Raises ConfigurationError for invalid retry settings
        self.retry_policy()

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            jitter=self.retry_jitter,
            respect_retry_after=self.respect_retry_after,
            non_retryable_statuses=self.non_retryable_statuses,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClientConfig":
        """Build from a (possibly sectioned) mapping, ignoring unknown keys."""
        flat: dict[str, Any] = {}
        for key, value in data.items():
            if key in _SECTIONS and isinstance(value, dict):
                for sub_key, sub_value in value.items():
                    if key == "retry":
                        sub_key = _RETRY_KEYS.get(sub_key, sub_key)
                    flat[sub_key] = sub_value
            else:
                flat[key] = value

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(flat) - known)
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {unknown}")
        return cls(**{k: v for k, v in flat.items() if k in known and v is not None})

    @classmethod
    def from_env(
        cls,
        env_file: Path | str | None = None,
        prefix: str = ENV_PREFIX,
    ) -> "ClientConfig":
        """Build from FORCELINK_* environment variables.

        Args:
            env_file: Optional .env file loaded first (existing variables win)
            prefix: Variable name prefix, e.g. FORCELINK_CLIENT_ID -> client_id
        """
        if env_file is not None:
            load_dotenv(env_file, override=False)

        values: dict[str, Any] = {}
        for f in fields(cls):
            raw = os.getenv(f"{prefix}{f.name.upper()}")
            if raw is not None and raw != "":
                values[f.name] = raw
        return cls(**values)


def load_config(
    config_path: Path | str,
    overrides: dict[str, Any] | None = None,
) -> ClientConfig:
    """Load client configuration from a YAML file.

    Environment variables ARE supported using ${VAR_NAME} syntax in YAML files.

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigurationError: If the configuration is invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from file: {config_path}")
    yaml_data = _expand_env_vars(load_yaml(config_path))
    section = yaml_data.get("forcelink", yaml_data)
    if not isinstance(section, dict):
        raise ConfigurationError(
            "Invalid config file: 'forcelink:' section must be a mapping"
        )

    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        section = {**section, **overrides}

    config = ClientConfig.from_dict(section)
    config.validate()
    logger.debug(
        "Configuration loaded",
        extra={"auth_strategy": config.auth_method, "instance_url": config.resolved_instance_url},
    )
    return config


__all__ = [
    "ClientConfig",
    "load_config",
    "load_yaml",
    "DEFAULT_API_VERSION",
    "LOGIN_URL",
    "SANDBOX_LOGIN_URL",
]
