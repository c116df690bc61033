# =============================================================================
# Configuration Management
# =============================================================================
# Reads and writes config.toml and knows where SmartMail keeps its files.
#
# Directories follow the XDG base directory layout:
#   - Config:  $XDG_CONFIG_HOME/smartmail/  (default: ~/.config/smartmail/)
#   - Data:    $XDG_DATA_HOME/smartmail/    (default: ~/.local/share/smartmail/)
#   - State:   $XDG_STATE_HOME/smartmail/   (default: ~/.local/state/smartmail/)
#
# Files:
#   - config.toml: User configuration (accounts, sync settings)
#   - smartmail.db: SQLite database (in data directory)
#   - smartmail.log: Rotating log file (in state directory)
# =============================================================================

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomli_w

from smartmail.core import Account
from smartmail.imap.providers import get_provider


# =============================================================================
# XDG Directory Management
# =============================================================================

APP_NAME = "smartmail"


def _xdg_dir(env_var: str, *default: str) -> Path:
    value = os.environ.get(env_var)
    base = Path(value) if value else Path.home().joinpath(*default)
    return base / APP_NAME


def get_xdg_config_home() -> Path:
    """
    Returns the XDG config directory for SmartMail.

    Respects $XDG_CONFIG_HOME if set, otherwise uses ~/.config/smartmail/
    """
    return _xdg_dir("XDG_CONFIG_HOME", ".config")


def get_xdg_data_home() -> Path:
    """
    Returns the XDG data directory for SmartMail.

    Respects $XDG_DATA_HOME if set, otherwise uses ~/.local/share/smartmail/
    This is where the mirrored mail database lives.
    """
    return _xdg_dir("XDG_DATA_HOME", ".local", "share")


def get_xdg_state_home() -> Path:
    """
    Returns the XDG state directory for SmartMail.

    Respects $XDG_STATE_HOME if set, otherwise uses ~/.local/state/smartmail/
    Log files live here.
    """
    return _xdg_dir("XDG_STATE_HOME", ".local", "state")


def ensure_directories() -> dict[str, Path]:
    """Create the config, data and state directories and return them by kind."""
    dirs = {
        "config": get_xdg_config_home(),
        "data": get_xdg_data_home(),
        "state": get_xdg_state_home(),
    }

    for dir_path in dirs.values():
        dir_path.mkdir(parents=True, exist_ok=True)

    return dirs


# =============================================================================
# Configuration Data Structures
# =============================================================================

@dataclass
class SyncConfig:
    """
    Configuration for mailbox synchronization.

    Attributes:
        uid_batch_size: Sequence numbers listed per UID/flags round-trip.
        message_batch_size: Messages downloaded per body fetch. Smaller
                            batches cap memory and persist progress sooner.
        check_quota: Query the server's storage quota after each sync.
    """
    uid_batch_size: int = 5000
    message_batch_size: int = 50
    check_quota: bool = True

    def __post_init__(self) -> None:
        if self.uid_batch_size < 1:
            raise ConfigError(f"uid_batch_size must be positive, got {self.uid_batch_size}")
        if self.message_batch_size < 1:
            raise ConfigError(
                f"message_batch_size must be positive, got {self.message_batch_size}"
            )


@dataclass
class Config:
    """
    Main configuration container for SmartMail.

    Attributes:
        default_account: ID of the account used when none is given.
        accounts: Configured accounts, keyed by account ID.
        sync: Synchronization settings.

    Usage:
        >>> config = Config.load()
        >>> config.accounts["work"].email
        'me@example.com'
    """
    default_account: str = ""
    accounts: dict[str, Account] = field(default_factory=dict)
    sync: SyncConfig = field(default_factory=SyncConfig)

    # -------------------------------------------------------------------------
    # File Paths
    # -------------------------------------------------------------------------

    @staticmethod
    def config_file_path() -> Path:
        """config.toml in the config directory."""
        return get_xdg_config_home() / "config.toml"

    @staticmethod
    def database_path() -> Path:
        """SQLite mirror in the data directory."""
        return get_xdg_data_home() / "smartmail.db"

    @staticmethod
    def log_file_path() -> Path:
        """Rotating log file in the state directory."""
        return get_xdg_state_home() / "smartmail.log"

    # -------------------------------------------------------------------------
    # Loading and Saving
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """
        Read config.toml.

        A missing file is not an error; it yields an empty configuration.

        Args:
            path: Explicit config file. Defaults to the XDG location.

        Returns:
            Loaded Config object.

        Raises:
            ConfigError: If the file is not valid TOML or describes an
                invalid account or sync setting.
        """
        ensure_directories()

        config_path = path or cls.config_file_path()

        if not config_path.exists():
            return cls()

        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid config file {config_path}: {e}") from e

        return cls._from_dict(data)

    def save(self, path: Path | None = None) -> None:
        """Write config.toml. Passwords are never written."""
        ensure_directories()

        config_path = path or self.config_file_path()
        with open(config_path, "wb") as f:
            tomli_w.dump(self._to_dict(), f)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """
        Build a Config from parsed TOML.

        Accounts that name a known provider but no host get their
        connection settings from the provider registry.
        """
        config = cls()

        general = data.get("general", {})
        config.default_account = general.get("default_account", "")

        sync = data.get("sync", {})
        config.sync = SyncConfig(
            uid_batch_size=sync.get("uid_batch_size", 5000),
            message_batch_size=sync.get("message_batch_size", 50),
            check_quota=sync.get("check_quota", True),
        )

        for account_id, acct_data in data.get("accounts", {}).items():
            if not acct_data.get("email"):
                raise ConfigError(f"Account '{account_id}' has no email address")

            provider = acct_data.get("provider", "")
            imap_host = acct_data.get("imap_host", "")
            imap_port = acct_data.get("imap_port", 993)
            if provider and not imap_host:
                preset = get_provider(provider)
                if preset is None:
                    raise ConfigError(
                        f"Account '{account_id}' uses unknown provider '{provider}'"
                    )
                imap_host = preset.host
                imap_port = preset.port

            config.accounts[account_id] = Account(
                id=account_id,
                email=acct_data["email"],
                name=acct_data.get("name", ""),
                provider=provider,
                color=acct_data.get("color", ""),
                imap_host=imap_host,
                imap_port=imap_port,
                imap_security=acct_data.get("imap_security", "ssl"),
                username=acct_data.get("username", ""),
            )

        return config

    def _to_dict(self) -> dict[str, Any]:
        """Inverse of _from_dict(), ready for tomli_w."""
        data: dict[str, Any] = {
            "general": {"default_account": self.default_account},
            "sync": {
                "uid_batch_size": self.sync.uid_batch_size,
                "message_batch_size": self.sync.message_batch_size,
                "check_quota": self.sync.check_quota,
            },
            "accounts": {},
        }

        # Passwords stay in the keyring and are never written here
        for account_id, account in self.accounts.items():
            data["accounts"][account_id] = {
                "email": account.email,
                "name": account.name,
                "provider": account.provider,
                "color": account.color,
                "imap_host": account.imap_host,
                "imap_port": account.imap_port,
                "imap_security": account.imap_security,
                "username": account.username,
            }

        return data


# =============================================================================
# Exceptions
# =============================================================================

class ConfigError(Exception):
    """Invalid or unreadable configuration."""
    pass


# =============================================================================
# Utility Functions
# =============================================================================

def print_paths() -> None:
    """Print where SmartMail reads and writes its files."""
    print(f"Config:  {get_xdg_config_home()}")
    print(f"Data:    {get_xdg_data_home()}")
    print(f"State:   {get_xdg_state_home()}")
    print()
    print(f"Config file:  {Config.config_file_path()}")
    print(f"Database:     {Config.database_path()}")
    print(f"Log file:     {Config.log_file_path()}")
