"""ftpsclient: a standalone FTP/FTPS client core.

Subpackages:
- ftp: control channel, data channel negotiation, transfers, listings
- config: persisted settings, paths and keyring credentials
- utils: logging with secret redaction, input validators
"""

__version__ = "1.0.0"
