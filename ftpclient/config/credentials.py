"""Secure credential storage for the FTP client engine.

Uses the system keyring (Windows Credential Manager, macOS Keychain,
Linux Secret Service) so FTP passwords never land in the settings file.
"""

from typing import Optional

import keyring
from keyring.errors import KeyringError


class CredentialManager:
    """Secure credential storage using system keyring."""

    SERVICE_NAME = "ftpclient"

    def _make_key(self, host: str, port: int, username: str) -> str:
        """Key a password by endpoint and user."""
        return f"{host}:{port}:{username}"

    def save_password(self, host: str, port: int, username: str, password: str) -> bool:
        """
        Save FTP password securely.

        Args:
            host: FTP host
            port: FTP control port
            username: FTP username
            password: Password to save

        Returns:
            True if saved successfully, False otherwise
        """
        try:
            keyring.set_password(self.SERVICE_NAME, self._make_key(host, port, username), password)
            return True
        except KeyringError:
            return False

    def get_password(self, host: str, port: int, username: str) -> Optional[str]:
        """
        Retrieve saved password.

        Returns:
            Password string or None if not found
        """
        try:
            return keyring.get_password(self.SERVICE_NAME, self._make_key(host, port, username))
        except KeyringError:
            return None

    def delete_password(self, host: str, port: int, username: str) -> bool:
        """
        Remove saved password.

        Returns:
            True if deleted successfully, False otherwise
        """
        try:
            keyring.delete_password(self.SERVICE_NAME, self._make_key(host, port, username))
            return True
        except KeyringError:
            return False

    def has_password(self, host: str, port: int, username: str) -> bool:
        """True if a password is saved for this endpoint and user."""
        return self.get_password(host, port, username) is not None
