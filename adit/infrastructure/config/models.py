"""
Configuration models and data structures.

This module defines the configuration models of the tunnel application,
providing type safety and validation for configuration values.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

PortValue = Union[int, List[int]]

FORWARD_MODES = ("out", "in")


def _validate_port(name: str, port: PortValue) -> None:
    if isinstance(port, (list, tuple)):
        if len(port) != 2:
            raise ValueError(f"{name} range must be [min, max], got {port}")
        low, high = port
        if not (1 <= low < high <= 65536):
            raise ValueError(f"{name} range must satisfy 1 <= min < max <= 65536, got {port}")
        return

    if not (0 <= int(port) <= 65535):
        raise ValueError(f"{name} must be between 0 and 65535, got {port}")


@dataclass
class SSHConfig:
    """SSH transport configuration."""
    host: str = ""
    port: PortValue = 22
    username: Optional[str] = None
    password: Optional[str] = None
    agent: Optional[str] = None
    key: Optional[str] = None
    known_hosts_path: Optional[str] = None
    keepalive_interval: float = 60.0
    connect_timeout: float = 30.0
    retries: int = 0
    retry_delay: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SSHConfig':
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EndpointConfig:
    """One side of a forward."""
    host: str = "localhost"
    port: PortValue = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EndpointConfig':
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ForwardingConfig:
    """
    What the tunnel forwards.

    ``out`` listens on ``from`` locally and forwards to ``to`` behind the
    SSH host; ``in`` asks the SSH host to listen on ``to`` and delivers to
    ``from`` locally.
    """
    mode: str = "out"
    from_: EndpointConfig = field(default_factory=EndpointConfig)
    to: EndpointConfig = field(default_factory=EndpointConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ForwardingConfig':
        return cls(
            mode=data.get('mode', 'out'),
            from_=EndpointConfig.from_dict(data.get('from', data.get('from_', {}))),
            to=EndpointConfig.from_dict(data.get('to', {}))
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mode': self.mode,
            'from': self.from_.to_dict(),
            'to': self.to.to_dict(),
        }


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    log_directory: str = "logs"
    max_file_size: str = "10MB"
    backup_count: int = 5
    console_enabled: bool = True
    file_enabled: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoggingConfig':
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ApplicationConfig:
    """Main application configuration."""

    name: str = "Adit"
    version: str = "0.1.0"
    debug: bool = False

    ssh: SSHConfig = field(default_factory=SSHConfig)
    forwarding: ForwardingConfig = field(default_factory=ForwardingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_file_path: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate_ports()
        self._validate_retries()
        self._validate_timeouts()
        self._validate_mode()

    def _validate_ports(self) -> None:
        """Validate port numbers and ranges."""
        ports = [
            ("SSH port", self.ssh.port),
            ("Forward 'from' port", self.forwarding.from_.port),
            ("Forward 'to' port", self.forwarding.to.port),
        ]

        for name, port in ports:
            _validate_port(name, port)

    def _validate_retries(self) -> None:
        if self.ssh.retries < 0:
            raise ValueError(f"SSH retries must be non-negative, got {self.ssh.retries}")
        if self.ssh.retry_delay < 0:
            raise ValueError(f"SSH retry delay must be non-negative, got {self.ssh.retry_delay}")

    def _validate_timeouts(self) -> None:
        """Validate timeout values."""
        timeouts = [
            ("SSH connect timeout", self.ssh.connect_timeout),
            ("SSH keepalive interval", self.ssh.keepalive_interval),
        ]

        for name, timeout in timeouts:
            if timeout <= 0:
                raise ValueError(f"{name} must be positive, got {timeout}")

    def _validate_mode(self) -> None:
        if self.forwarding.mode not in FORWARD_MODES:
            raise ValueError(
                f"Forwarding mode must be one of {FORWARD_MODES}, got {self.forwarding.mode!r}")

    def to_tunnel_settings(self) -> Dict[str, Any]:
        """Settings mapping accepted by ``Adit``."""
        return {
            'host': self.ssh.host,
            'port': self.ssh.port,
            'username': self.ssh.username,
            'password': self.ssh.password,
            'agent': self.ssh.agent,
            'key': self.ssh.key,
            'retries': self.ssh.retries,
            'retry_delay': self.ssh.retry_delay,
            'from': self.forwarding.from_.to_dict(),
            'to': self.forwarding.to.to_dict(),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            'name': self.name,
            'version': self.version,
            'debug': self.debug,
            'ssh': self.ssh.to_dict(),
            'forwarding': self.forwarding.to_dict(),
            'logging': self.logging.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApplicationConfig':
        """Create configuration from dictionary."""
        return cls(
            name=data.get('name', 'Adit'),
            version=data.get('version', '0.1.0'),
            debug=data.get('debug', False),
            ssh=SSHConfig.from_dict(data.get('ssh', {})),
            forwarding=ForwardingConfig.from_dict(data.get('forwarding', {})),
            logging=LoggingConfig.from_dict(data.get('logging', {})),
            config_file_path=data.get('config_file_path')
        )
