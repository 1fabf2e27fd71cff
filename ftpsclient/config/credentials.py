"""Secure credential storage for ftpsclient.

Uses the system keyring (Windows Credential Manager, macOS Keychain,
Linux Secret Service) so FTP passwords never land in the settings file.
"""

import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger("ftpsclient.credentials")


class CredentialManager:
    """FTP passwords in the system keyring, one entry per host and user."""

    SERVICE_NAME = "ftpsclient"

    @staticmethod
    def entry_name(host: str, username: str) -> str:
        """Keyring entry for a login, e.g. "ftp.example.com:alice"."""
        return f"{host}:{username}"

    def save_password(self, host: str, username: str, password: str) -> bool:
        """
        Remember the password of a login.

        Args:
            host: Server host
            username: Login name
            password: Password to store

        Returns:
            True if the keyring accepted it
        """
        entry = self.entry_name(host, username)
        try:
            keyring.set_password(self.SERVICE_NAME, entry, password)
        except KeyringError as e:
            logger.warning(f"Keyring refused password for {entry}: {e}")
            return False
        logger.debug(f"Stored password for {entry}")
        return True

    def get_password(self, host: str, username: str) -> Optional[str]:
        """Stored password of a login, or None (also when the keyring fails)."""
        entry = self.entry_name(host, username)
        try:
            return keyring.get_password(self.SERVICE_NAME, entry)
        except KeyringError as e:
            logger.warning(f"Keyring lookup for {entry} failed: {e}")
            return None

    def delete_password(self, host: str, username: str) -> bool:
        """Forget a stored password; False if there was none or the keyring failed."""
        entry = self.entry_name(host, username)
        try:
            keyring.delete_password(self.SERVICE_NAME, entry)
        except PasswordDeleteError:
            return False
        except KeyringError as e:
            logger.warning(f"Keyring delete for {entry} failed: {e}")
            return False
        return True

    def has_password(self, host: str, username: str) -> bool:
        return self.get_password(host, username) is not None
