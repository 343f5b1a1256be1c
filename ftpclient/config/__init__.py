"""Configuration module for the FTP client engine.

This module handles client settings and credentials:
- SettingsManager: JSON-based settings persistence
- CredentialManager: Secure credential storage via keyring
- Paths: Application data locations
- ClientSettings: Settings dataclass
"""
