"""
Configuration management for pow-proxy.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

# Hosted JSON-RPC endpoint used when no explicit provider URL is configured
INFURA_URL_TEMPLATE = "https://{network}.infura.io/v3/{project_id}"

ENV_PREFIX = "POW_PROXY_"


class GeneralConfig(BaseModel):
    """General configuration."""

    project_name: str = "pow-proxy"
    version: str = "0.1.0"
    log_level: str = "INFO"
    logs_dir: str = ""  # blank = stderr only; relative paths resolve against cwd
    json_logs: bool = False


class ProxyConfig(BaseModel):
    """Forwarding proxy configuration.

    Notes:
    - An empty ``host`` binds all interfaces.
    - An empty ``provider_url`` falls back to the Infura template (see InfuraConfig).
    - ``request_timeout`` of 0 disables the outbound deadline.
    """

    model_config = ConfigDict(extra="forbid")

    host: str = ""
    port: str = "8545"
    provider_url: str = ""
    request_timeout: float = 300.0  # 5 min, batched calls can be slow
    error_status_codes: bool = True  # False = legacy 200-with-error-text replies
    chunk_size: int = 65536


class InfuraConfig(BaseModel):
    """Hosted provider configuration, used only when proxy.provider_url is blank."""

    model_config = ConfigDict(extra="forbid")

    network: str = "mainnet"
    project_id: str = ""


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    infura: InfuraConfig = Field(default_factory=InfuraConfig)


def build_provider_url(provider_url: str, network: str, project_id: str) -> str:
    """Return the explicit provider URL, or the Infura URL when it is blank.

    No validation is done on network or project id; bad values show up as
    upstream connection errors.
    """
    if provider_url:
        return provider_url
    return INFURA_URL_TEMPLATE.format(network=network, project_id=project_id)


def resolve_provider_url(settings: Settings) -> str:
    """Resolve the provider URL from loaded settings."""
    return build_provider_url(
        settings.proxy.provider_url,
        settings.infura.network,
        settings.infura.project_id,
    )


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary.

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# Cache for local.yaml content (loaded once per process)
_local_overrides_cache: dict[str, Any] | None = None


def _load_local_overrides(config_dir: Path) -> dict[str, Any]:
    """Load local.yaml overrides (cached).

    Top-level keys correspond to config file names (without .yaml extension).

    Example local.yaml:
        settings:
          infura:
            project_id: 0123456789abcdef

    Args:
        config_dir: Configuration directory path.

    Returns:
        Local overrides dictionary (cached after first load).
    """
    global _local_overrides_cache

    if _local_overrides_cache is not None:
        return _local_overrides_cache

    local_path = config_dir / "local.yaml"
    if local_path.exists():
        with open(local_path, encoding="utf-8") as f:
            _local_overrides_cache = yaml.safe_load(f) or {}
    else:
        _local_overrides_cache = {}

    return _local_overrides_cache


def _load_yaml_with_local_override(
    config_dir: Path,
    filename: str,
    section_key: str | None = None,
) -> dict[str, Any]:
    """Load YAML file with local.yaml override support.

    Args:
        config_dir: Configuration directory path.
        filename: YAML filename (e.g., "settings.yaml").
        section_key: Key in local.yaml for overrides.
                     Defaults to filename without extension.

    Returns:
        Merged configuration dictionary.
    """
    config: dict[str, Any] = {}

    base_path = config_dir / filename
    if base_path.exists():
        with open(base_path, encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

    local_overrides = _load_local_overrides(config_dir)
    if section_key is None:
        section_key = Path(filename).stem

    if section_key in local_overrides:
        config = _deep_merge(config, local_overrides[section_key])

    return config


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables should be prefixed with POW_PROXY_ and use
    double underscores for nested keys.

    Example:
        POW_PROXY_PROXY__PROVIDER_URL=http://localhost:8547

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with environment overrides.
    """
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX) or key == f"{ENV_PREFIX}CONFIG_DIR":
            continue

        key_path = key[len(ENV_PREFIX) :].lower().split("__")

        current = config
        for part in key_path[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]

        # Keep raw strings for values pydantic can coerce itself (ports, ids);
        # only booleans need translating from shell spelling.
        final_key = key_path[-1]
        if value.lower() in ("true", "false"):
            current[final_key] = value.lower() == "true"
        else:
            current[final_key] = value

    return config


def get_config_dir() -> Path:
    """Return the configuration directory (POW_PROXY_CONFIG_DIR or ./config)."""
    return Path(os.environ.get(f"{ENV_PREFIX}CONFIG_DIR", "config"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. config/settings.yaml, then config/local.yaml (settings section)
    3. Environment variables (highest priority)

    Returns:
        Settings instance.
    """
    config = _load_yaml_with_local_override(get_config_dir(), "settings.yaml", "settings")
    config = _apply_env_overrides(config)
    return Settings(**config)


def reset_settings_cache() -> None:
    """Forget cached settings and local overrides (used by tests and reloads)."""
    global _local_overrides_cache

    _local_overrides_cache = None
    get_settings.cache_clear()
