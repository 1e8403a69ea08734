"""
Settings management for hdcustody.

Configuration is loaded with pydantic-settings from, highest priority first:
1. Explicit overrides (CLI arguments passed to ``get_settings``)
2. Environment variables
3. TOML configuration file (~/.hdcustody/config.toml)
4. Default values

Environment Variable Naming:
    - Use uppercase with double underscore for nested settings
    - Examples: REMOTE__TIMEOUT, SECURITY__BCRYPT_ROUNDS, LOGGING__LEVEL
    - Maps to TOML sections: REMOTE__TIMEOUT -> [remote] timeout
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from hdcustody.paths import CONFIG_FILE_ENV, DATA_DIR_ENV, get_default_data_dir


class RemoteSettings(BaseModel):
    """Remote ledger service configuration."""

    base_url_template: str = Field(
        default="http://127.0.0.1:3000/api/{chain}/{network}",
        description="Default service URL; {chain} and {network} are substituted per wallet",
    )
    timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="HTTP timeout in seconds for calls to the ledger service",
    )


class SecuritySettings(BaseModel):
    """Key-derivation and password hashing costs."""

    pbkdf2_iterations: int = Field(
        default=600_000,
        ge=1,
        description="PBKDF2-HMAC-SHA256 iterations protecting the encryption key",
    )
    bcrypt_rounds: int = Field(
        default=10,
        ge=4,
        le=31,
        description="bcrypt cost factor for the stored password hash",
    )


class WalletSettings(BaseModel):
    """Defaults for wallet creation."""

    default_chain: str = Field(default="BTC", description="Chain used when none is given")
    default_network: str = Field(default="mainnet", description="Network used when none is given")
    mnemonic_words: int = Field(
        default=12,
        description="Word count for generated mnemonics (12, 15, 18, 21, or 24)",
    )


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        description="Log level: TRACE, DEBUG, INFO, WARNING, ERROR",
    )


class CustodySettings(BaseSettings):
    """Top-level settings."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    data_dir: Path | None = Field(
        default=None,
        description="Data directory (defaults to ~/.hdcustody)",
    )

    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    wallet: WalletSettings = Field(default_factory=WalletSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls),
        )

    def get_data_dir(self) -> Path:
        """Get the data directory, using default if not set."""
        if self.data_dir is not None:
            return self.data_dir
        return get_default_data_dir()

    def default_base_url(self, chain: str, network: str) -> str:
        return self.remote.base_url_template.format(chain=chain, network=network)


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """Reads settings from $HDCUSTODY_CONFIG_FILE or <data dir>/config.toml."""

    def __init__(self, settings_cls: type[BaseSettings]) -> None:
        super().__init__(settings_cls)
        self._config: dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        config_path = get_config_path()

        if not config_path.exists():
            logger.debug(f"Config file not found at {config_path}, using defaults")
            return

        try:
            with open(config_path, "rb") as f:
                self._config = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Invalid TOML syntax in config file {config_path}: {e}")
            raise

        logger.debug(f"Loaded config from {config_path}")

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        value = self._config.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> dict[str, Any]:
        return self._config


def get_config_path() -> Path:
    """Get the path to the config file."""
    env_path = os.environ.get(CONFIG_FILE_ENV)
    if env_path:
        return Path(env_path)
    data_dir_env = os.environ.get(DATA_DIR_ENV)
    data_dir = Path(data_dir_env) if data_dir_env else Path.home() / ".hdcustody"
    return data_dir / "config.toml"


def generate_config_template() -> str:
    """Config file with every setting present but commented out."""
    lines: list[str] = [
        "# hdcustody configuration",
        "#",
        "# Settings are commented out by default - uncomment to override.",
        "# Environment variables take precedence, e.g. REMOTE__TIMEOUT=10",
        "",
    ]

    def add_section(title: str, model_cls: type[BaseModel], prefix: str) -> None:
        lines.append(f"# {'=' * 60}")
        lines.append(f"# {title}")
        lines.append(f"# {'=' * 60}")
        lines.append(f"[{prefix}]")
        lines.append("")

        for field_name, field_info in model_cls.model_fields.items():
            if field_info.description:
                lines.append(f"# {field_info.description}")
            default = field_info.default
            if isinstance(default, bool):
                value_str = str(default).lower()
            elif isinstance(default, str):
                value_str = f'"{default}"'
            else:
                value_str = str(default)
            lines.append(f"# {field_name} = {value_str}")
            lines.append("")

    add_section("Remote Ledger Service", RemoteSettings, "remote")
    add_section("Security", SecuritySettings, "security")
    add_section("Wallet Defaults", WalletSettings, "wallet")
    add_section("Logging", LoggingSettings, "logging")

    return "\n".join(lines)


def ensure_config_file(data_dir: Path | None = None) -> Path:
    """Create a commented config template if none exists; return its path."""
    if data_dir is None:
        data_dir = get_default_data_dir()

    config_path = data_dir / "config.toml"

    if not config_path.exists():
        logger.info(f"Creating config file template at {config_path}")
        data_dir.mkdir(parents=True, exist_ok=True)
        config_path.write_text(generate_config_template())

    return config_path


_settings: CustodySettings | None = None


def get_settings(**overrides: Any) -> CustodySettings:
    """
    Get the settings instance.

    Loaded once and cached; passing overrides forces a reload.
    """
    global _settings
    if _settings is None or overrides:
        _settings = CustodySettings(**overrides)
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings
    _settings = None


__all__ = [
    "CustodySettings",
    "RemoteSettings",
    "SecuritySettings",
    "WalletSettings",
    "LoggingSettings",
    "get_settings",
    "reset_settings",
    "get_config_path",
    "generate_config_template",
    "ensure_config_file",
]
