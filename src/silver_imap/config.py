# =============================================================================
# Configuration Management
# =============================================================================
# Handles loading, saving, and validating Silver IMAP configuration.
#
# XDG Base Directory Compliance (https://specifications.freedesktop.org/basedir-spec/):
#   - Config:  $XDG_CONFIG_HOME/silver-imap/  (default: ~/.config/silver-imap/)
#   - Data:    $XDG_DATA_HOME/silver-imap/    (default: ~/.local/share/silver-imap/)
#
# Files:
#   - config.toml: Server configuration (listener, storage, mailbox)
#   - mails.db: SQLite message store (in data directory)
# =============================================================================

import os
import tomllib  # Built into Python 3.11+
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomli_w  # For writing TOML (tomllib is read-only)


# =============================================================================
# XDG Directory Management
# =============================================================================

# Application identifier used in all XDG paths
APP_NAME = "silver-imap"


def get_xdg_config_home() -> Path:
    """
    Returns the XDG config directory for Silver IMAP.

    Respects $XDG_CONFIG_HOME if set, otherwise uses ~/.config/silver-imap/
    """
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        base = Path(xdg_config)
    else:
        base = Path.home() / ".config"
    return base / APP_NAME


def get_xdg_data_home() -> Path:
    """
    Returns the XDG data directory for Silver IMAP.

    Respects $XDG_DATA_HOME if set, otherwise uses ~/.local/share/silver-imap/
    This is where the SQLite message store lives.
    """
    xdg_data = os.environ.get("XDG_DATA_HOME")
    if xdg_data:
        base = Path(xdg_data)
    else:
        base = Path.home() / ".local" / "share"
    return base / APP_NAME


# =============================================================================
# Configuration Data Structures
# =============================================================================

@dataclass
class ServerConfig:
    """
    Configuration for the TCP listener.

    Attributes:
        host: Interface to bind.
        port: Port to listen on. 143 is the standard cleartext IMAP port.
        idle_timeout_minutes: Drop a session that sends nothing for this long.
        banner: Text of the greeting line. The BYE line is fixed.
    """
    host: str = "0.0.0.0"
    port: int = 143
    idle_timeout_minutes: int = 30
    banner: str = "SQLite IMAP server ready"

    @property
    def idle_timeout_seconds(self) -> float:
        return self.idle_timeout_minutes * 60.0


@dataclass
class StorageConfig:
    """
    Configuration for the message store.

    Attributes:
        database: Path to the SQLite file. None means the XDG data location.
        seed_sample_messages: Insert two welcome messages into an empty INBOX.
    """
    database: Path | None = None
    seed_sample_messages: bool = False


@dataclass
class MailboxConfig:
    """
    Mailbox-level protocol constants.

    Attributes:
        uidvalidity: UIDVALIDITY reported for every folder. Ids are never
                     reused, so this never has to change.
    """
    uidvalidity: int = 1


@dataclass
class Config:
    """
    Main configuration container for Silver IMAP.

    Usage:
        >>> config = Config.load()
        >>> config.server.port
        143
    """
    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    mailbox: MailboxConfig = field(default_factory=MailboxConfig)

    # -------------------------------------------------------------------------
    # File Paths
    # -------------------------------------------------------------------------

    @staticmethod
    def config_file_path() -> Path:
        """Returns the path to the main config file."""
        return get_xdg_config_home() / "config.toml"

    @staticmethod
    def default_database_path() -> Path:
        """Returns the default path to the SQLite database."""
        return get_xdg_data_home() / "mails.db"

    @property
    def database_path(self) -> Path:
        """The configured database path, falling back to the XDG default."""
        return self.storage.database or self.default_database_path()

    # -------------------------------------------------------------------------
    # Loading and Saving
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """
        Load configuration from a TOML file.

        If the file doesn't exist, returns default configuration.

        Args:
            path: Config file to read. Defaults to the XDG location.

        Returns:
            Loaded Config object.

        Raises:
            ConfigError: If the config file exists but is invalid.
        """
        config_path = path or cls.config_file_path()

        if not config_path.exists():
            # No config file yet - return defaults
            return cls()

        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid config file {config_path}: {e}") from e

        return cls._from_dict(data)

    def save(self, path: Path | None = None) -> Path:
        """
        Save configuration to a TOML file.

        Args:
            path: Destination. Defaults to the XDG location.

        Returns:
            The path written.
        """
        config_path = path or self.config_file_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "wb") as f:
            tomli_w.dump(self._to_dict(), f)

        return config_path

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """
        Create a Config object from a dictionary (parsed TOML).

        Raises:
            ConfigError: If a value has the wrong type.
        """
        config = cls()

        server = data.get("server", {})
        config.server = ServerConfig(
            host=server.get("host", "0.0.0.0"),
            port=server.get("port", 143),
            idle_timeout_minutes=server.get("idle_timeout_minutes", 30),
            banner=server.get("banner", "SQLite IMAP server ready"),
        )

        storage = data.get("storage", {})
        database = storage.get("database")
        config.storage = StorageConfig(
            database=Path(database).expanduser() if database else None,
            seed_sample_messages=storage.get("seed_sample_messages", False),
        )

        mailbox = data.get("mailbox", {})
        config.mailbox = MailboxConfig(
            uidvalidity=mailbox.get("uidvalidity", 1),
        )

        config._validate()
        return config

    def _validate(self) -> None:
        """Reject values the server cannot run with."""
        if not isinstance(self.server.port, int) or not 0 <= self.server.port <= 65535:
            raise ConfigError(f"server.port must be an integer 0-65535, got {self.server.port!r}")
        if not isinstance(self.server.idle_timeout_minutes, int) or self.server.idle_timeout_minutes <= 0:
            raise ConfigError("server.idle_timeout_minutes must be a positive integer")
        if not isinstance(self.mailbox.uidvalidity, int) or self.mailbox.uidvalidity <= 0:
            raise ConfigError("mailbox.uidvalidity must be a positive integer")

    def _to_dict(self) -> dict[str, Any]:
        """
        Convert Config to a dictionary for TOML serialization.

        TOML has no null, so an unset database path is simply omitted.
        """
        data: dict[str, Any] = {}

        data["server"] = {
            "host": self.server.host,
            "port": self.server.port,
            "idle_timeout_minutes": self.server.idle_timeout_minutes,
            "banner": self.server.banner,
        }

        data["storage"] = {
            "seed_sample_messages": self.storage.seed_sample_messages,
        }
        if self.storage.database:
            data["storage"]["database"] = str(self.storage.database)

        data["mailbox"] = {
            "uidvalidity": self.mailbox.uidvalidity,
        }

        return data


# =============================================================================
# Exceptions
# =============================================================================

class ConfigError(Exception):
    """Raised when there's an error loading or parsing configuration."""
    pass


# =============================================================================
# Utility Functions
# =============================================================================

def print_paths(config: Config | None = None, config_file: Path | None = None) -> None:
    """
    Print all XDG paths for debugging.
    Useful for operators wondering where config/data is stored.

    Args:
        config: Effective configuration. Its database path is shown.
        config_file: Config file in use. Defaults to the XDG location.
    """
    config = config or Config()
    print(f"Config:  {get_xdg_config_home()}")
    print(f"Data:    {get_xdg_data_home()}")
    print()
    print(f"Config file:  {config_file or Config.config_file_path()}")
    print(f"Database:     {config.database_path}")
