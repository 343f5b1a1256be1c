"""Client settings management for the FTP client engine.

Provides ClientSettings dataclass and SettingsManager for persistence.
The engine only ever receives a ClientSettings instance; reading and
writing the JSON file is left to front ends.
"""

import json
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

from ftpclient.config.paths import get_settings_path


TRANSFER_TYPES = ("I", "A")


@dataclass
class ClientSettings:
    """Engine tunables plus the last endpoint a front end used."""

    # Timeouts (seconds)
    connect_timeout: float = 10.0
    reply_timeout: float = 30.0

    # Data channel
    passive_mode: bool = True
    trust_pasv_address: bool = False
    transfer_type: str = "I"
    block_size: int = 8192

    # Control channel text encoding
    encoding: str = "utf-8"

    # Connection form defaults
    last_host: str = ""
    last_port: int = 21
    last_username: str = "anonymous"

    def __post_init__(self):
        """Validate settings after initialization."""
        if not 0 < self.connect_timeout <= 300:
            raise ValueError(f"Connect timeout must be between 0 and 300, got {self.connect_timeout}")
        if not 0 < self.reply_timeout <= 3600:
            raise ValueError(f"Reply timeout must be between 0 and 3600, got {self.reply_timeout}")
        if not 0 <= self.last_port <= 65535:
            raise ValueError(f"Port must be between 0 and 65535, got {self.last_port}")
        if self.transfer_type not in TRANSFER_TYPES:
            raise ValueError(f"Transfer type must be one of {TRANSFER_TYPES}, got {self.transfer_type!r}")
        if self.block_size <= 0:
            raise ValueError(f"Block size must be positive, got {self.block_size}")

    def to_dict(self) -> dict:
        """Convert settings to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ClientSettings":
        """Create settings from dictionary, ignoring unknown keys."""
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered)


class SettingsManager:
    """Manages client settings persistence."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize settings manager.

        Args:
            config_path: Optional custom path, defaults to platform standard
        """
        self._config_path = config_path or get_settings_path()
        self._settings: Optional[ClientSettings] = None

    @property
    def config_path(self) -> Path:
        """Path to settings file."""
        return self._config_path

    def load(self) -> ClientSettings:
        """
        Load settings from disk.

        Returns:
            ClientSettings instance (defaults if file not found or invalid)
        """
        if self._config_path.exists():
            try:
                with open(self._config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                self._settings = ClientSettings.from_dict(data)
            except (json.JSONDecodeError, IOError, TypeError, ValueError):
                # Invalid or unreadable file, use defaults
                self._settings = ClientSettings()
        else:
            self._settings = ClientSettings()

        return self._settings

    def save(self, settings: ClientSettings) -> None:
        """
        Persist settings to disk.

        Args:
            settings: Settings to save
        """
        self._settings = settings

        # Ensure parent directory exists
        self._config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self._config_path, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)

    def reset(self) -> ClientSettings:
        """
        Reset to default settings.

        Returns:
            Default ClientSettings instance
        """
        self._settings = ClientSettings()

        if self._config_path.exists():
            self._config_path.unlink()

        return self._settings

    def update(self, **kwargs) -> ClientSettings:
        """
        Update specific settings fields.

        Args:
            **kwargs: Field names and new values

        Returns:
            Updated ClientSettings instance
        """
        if self._settings is None:
            self.load()

        for key, value in kwargs.items():
            if hasattr(self._settings, key):
                setattr(self._settings, key, value)

        self.save(self._settings)
        return self._settings
