"""Configuration module for ftpsclient.

This module handles client settings and credentials:
- SettingsManager: JSON-based settings persistence
- CredentialManager: Secure credential storage via keyring
- Paths: Application data locations
- ClientSettings: Settings dataclass
"""
