"""
Tests for authentication strategy selection.
"""

from typing import Dict, List

import pytest

from adit.core.exceptions import ConfigurationError, ErrorCode, NoAuthStrategyError
from adit.tunnel.auth import AuthResolver


class RecordingKeyReader:
    """Returns canned key bytes per path and records what was read."""

    def __init__(self, keys: Dict[str, bytes]):
        self.keys = keys
        self.paths: List[str] = []

    def __call__(self, path: str) -> bytes:
        self.paths.append(path)
        if path not in self.keys:
            raise FileNotFoundError(path)
        return self.keys[path]


class TestAuthResolver:
    """Test cases for AuthResolver."""

    def test_password_wins_over_everything(self) -> None:
        reader = RecordingKeyReader({'/keys/id': b"KEY"})
        resolver = AuthResolver(reader)

        credentials = resolver.resolve(
            password="pw",
            agent_socket_path="/tmp/agent.sock",
            private_key_path="/keys/id",
            env={'SSH_AUTH_SOCK': "/env/agent", 'HOME': "/home/u"}
        )

        assert credentials.kind == "password"
        assert credentials.to_settings() == {'password': "pw"}
        assert reader.paths == []

    def test_private_key_used_without_agent(self) -> None:
        reader = RecordingKeyReader({'/keys/id': b"KEY"})

        credentials = AuthResolver(reader).resolve(
            private_key_path="/keys/id",
            env={'SSH_AUTH_SOCK': "/env/agent"}
        )

        assert credentials.to_settings() == {'private_key': b"KEY"}

    def test_explicit_agent_beats_private_key(self) -> None:
        reader = RecordingKeyReader({'/keys/id': b"KEY"})

        credentials = AuthResolver(reader).resolve(
            agent_socket_path="/tmp/agent.sock",
            private_key_path="/keys/id"
        )

        assert credentials.to_settings() == {'agent': "/tmp/agent.sock"}
        assert reader.paths == []

    def test_environment_agent(self) -> None:
        credentials = AuthResolver(RecordingKeyReader({})).resolve(
            env={'SSH_AUTH_SOCK': "/env/agent", 'HOME': "/home/u"}
        )

        assert credentials.kind == "agent"
        assert credentials.agent_socket_path == "/env/agent"

    def test_default_key_under_home(self) -> None:
        reader = RecordingKeyReader({'/home/u/.ssh/id_rsa': b"DEFAULT"})

        credentials = AuthResolver(reader).resolve(env={'HOME': "/home/u"})

        assert credentials.private_key == b"DEFAULT"
        assert reader.paths == ['/home/u/.ssh/id_rsa']

    def test_missing_default_key_means_no_strategy(self) -> None:
        with pytest.raises(NoAuthStrategyError) as exc_info:
            AuthResolver(RecordingKeyReader({})).resolve(env={'HOME': "/home/u"})

        assert exc_info.value.code is ErrorCode.NO_AUTH_STRATEGY
        assert "at least one" in str(exc_info.value)

    def test_nothing_configured(self) -> None:
        with pytest.raises(NoAuthStrategyError):
            AuthResolver(RecordingKeyReader({})).resolve(env={})

    def test_no_strategy_is_a_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            AuthResolver(RecordingKeyReader({})).resolve()

    def test_unreadable_explicit_key(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            AuthResolver(RecordingKeyReader({})).resolve(private_key_path="/nope")

        assert not isinstance(exc_info.value, NoAuthStrategyError)
        assert exc_info.value.details == {'key_path': "/nope"}

    def test_empty_explicit_key(self) -> None:
        with pytest.raises(ConfigurationError):
            AuthResolver(RecordingKeyReader({'/keys/empty': b""})).resolve(
                private_key_path="/keys/empty"
            )

    def test_reads_real_key_file(self, tmp_path) -> None:
        key_file = tmp_path / "id_test"
        key_file.write_bytes(b"-----BEGIN KEY-----")

        credentials = AuthResolver().resolve(private_key_path=str(key_file))

        assert credentials.private_key == b"-----BEGIN KEY-----"
