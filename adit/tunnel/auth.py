"""
Authentication strategy selection.

Exactly one credential kind is chosen from the explicit configuration and
the injected environment. The policy, first match wins:

1. an explicit password
2. an explicit private key path, when no agent or password is configured
3. an explicit agent socket, then the environment agent socket
4. the default key file ``<home>/.ssh/id_rsa``

Keys are assumed to carry no passphrase; use an agent for protected keys.
"""

from pathlib import Path
from typing import Callable, Mapping, Optional

from loguru import logger

from ..core.domain.models import Credentials
from ..core.exceptions import ConfigurationError, NoAuthStrategyError

KeyReader = Callable[[str], bytes]

AGENT_ENV_VAR = "SSH_AUTH_SOCK"
HOME_ENV_VAR = "HOME"
DEFAULT_KEY_FILE = Path(".ssh") / "id_rsa"


def read_key_file(path: str) -> bytes:
    return Path(path).expanduser().read_bytes()


class AuthResolver:
    """Chooses one authentication method for a tunnel."""

    def __init__(self, key_reader: Optional[KeyReader] = None):
        self._read = key_reader or read_key_file

    def resolve(
        self,
        password: Optional[str] = None,
        agent_socket_path: Optional[str] = None,
        private_key_path: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None
    ) -> Credentials:
        """
        Resolve the credentials to hand to the transport.

        Args:
            password: Explicitly configured password
            agent_socket_path: Explicitly configured ssh-agent socket
            private_key_path: Explicitly configured private key file
            env: Environment values; only ``SSH_AUTH_SOCK`` and ``HOME`` are read

        Returns:
            Credentials with exactly one field populated

        Raises:
            NoAuthStrategyError: If no method could be resolved
            ConfigurationError: If a key file cannot be read
        """
        env = env or {}

        if password:
            logger.debug("Using password authentication")
            return Credentials(password=password)

        if not agent_socket_path and private_key_path:
            logger.debug(f"Using private key {private_key_path}")
            return Credentials(private_key=self._load(private_key_path))

        agent = agent_socket_path or env.get(AGENT_ENV_VAR)
        if agent:
            logger.debug(f"Using ssh-agent at {agent}")
            return Credentials(agent_socket_path=agent)

        home = env.get(HOME_ENV_VAR)
        if home:
            key_path = str(Path(home) / DEFAULT_KEY_FILE)
            logger.debug(f"Falling back to default key {key_path}")
            try:
                key = self._read(key_path)
            except OSError as e:
                raise NoAuthStrategyError(details={'key_path': key_path}) from e
            if key:
                return Credentials(private_key=key)

        raise NoAuthStrategyError()

    def _load(self, path: str) -> bytes:
        try:
            key = self._read(path)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read private key {path}: {e}", details={'key_path': path}
            ) from e

        if not key:
            raise ConfigurationError(f"Private key {path} is empty", details={'key_path': path})

        return key
