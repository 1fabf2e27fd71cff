"""Session model for ftpsclient.

Provides the SessionState, SecurityMode, TransferType and DataMode enums,
the SessionConfig dataclass and the Session record owned by a
ControlChannel.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SessionState(Enum):
    """Control connection state."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"


class SecurityMode(Enum):
    """How (and whether) the session is encrypted."""
    PLAIN = "plain"
    EXPLICIT_TLS = "explicit-tls"
    IMPLICIT_TLS = "implicit-tls"

    @property
    def uses_tls(self) -> bool:
        """True for both TLS flavours."""
        return self is not SecurityMode.PLAIN

    @property
    def default_port(self) -> int:
        """Well-known port for this security mode."""
        return 990 if self is SecurityMode.IMPLICIT_TLS else 21


class TransferType(Enum):
    """Representation type sent with TYPE."""
    ASCII = "A"
    BINARY = "I"


class DataMode(Enum):
    """Who opens the data connection."""
    ACTIVE = "active"
    PASSIVE = "passive"


@dataclass
class SessionConfig:
    """FTP session configuration."""
    host: str
    port: Optional[int] = None
    security: SecurityMode = SecurityMode.PLAIN
    username: str = "anonymous"
    passive: bool = True
    connect_timeout: float = 30.0
    read_timeout: float = 60.0
    data_connect_timeout: float = 30.0
    accept_timeout: float = 30.0
    encoding: str = "utf-8"
    trust_pasv_address: bool = False
    verify_certificate: bool = True
    ca_file: Optional[str] = None
    prefer_mlsd: bool = False
    block_size: int = 8192

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.host:
            raise ValueError("Host is required")
        if isinstance(self.security, str):
            self.security = SecurityMode(self.security)
        if self.port is None:
            self.port = self.security.default_port
        if not 1 <= self.port <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {self.port}")
        for name in ("connect_timeout", "read_timeout",
                     "data_connect_timeout", "accept_timeout"):
            value = getattr(self, name)
            if value is None or value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
        if self.block_size <= 0:
            raise ValueError(f"Block size must be positive, got {self.block_size}")


@dataclass
class Session:
    """Mutable state of one control connection."""
    host: str
    port: int
    security: SecurityMode
    state: SessionState = SessionState.DISCONNECTED
    cwd: Optional[str] = None
    transfer_type: TransferType = TransferType.BINARY
    data_mode: DataMode = DataMode.PASSIVE

    @classmethod
    def from_config(cls, config: SessionConfig) -> "Session":
        """Create a fresh, disconnected session for a configuration."""
        return cls(
            host=config.host,
            port=config.port,
            security=config.security,
            data_mode=DataMode.PASSIVE if config.passive else DataMode.ACTIVE,
        )

    @property
    def is_connected(self) -> bool:
        """True once the control connection is open."""
        return self.state != SessionState.DISCONNECTED

    @property
    def is_authenticated(self) -> bool:
        """True after a successful login."""
        return self.state == SessionState.AUTHENTICATED

    def reset(self) -> None:
        """Forget everything learned on the last connection."""
        self.state = SessionState.DISCONNECTED
        self.cwd = None
