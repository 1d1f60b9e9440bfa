"""
Tests for tunnel domain models and events.
"""

import pytest

from adit.core.domain.events import Event, TunnelEvent
from adit.core.domain.models import ConnectionState, Credentials, Endpoint, TunnelConfig
from adit.core.exceptions import AditError, ConfigurationError, ErrorCode, TransportError


class TestCredentials:

    def test_exactly_one_kind_required(self) -> None:
        with pytest.raises(ConfigurationError):
            Credentials()
        with pytest.raises(ConfigurationError):
            Credentials(password="pw", agent_socket_path="/agent")

    def test_settings_carry_only_the_chosen_kind(self) -> None:
        assert Credentials(password="pw").to_settings() == {'password': "pw"}
        assert Credentials(agent_socket_path="/a").to_settings() == {'agent': "/a"}
        assert Credentials(private_key=b"k").to_settings() == {'private_key': b"k"}

    def test_repr_hides_secrets(self) -> None:
        assert "pw" not in repr(Credentials(password="pw"))


class TestTunnelConfig:

    def test_defaults(self) -> None:
        config = TunnelConfig(host="h", username="u", credentials=Credentials(password="p"))
        assert config.port == 22
        assert config.retries == 0
        assert config.retry_delay == 0.0

    @pytest.mark.parametrize("kwargs", [
        {'host': ""},
        {'retries': -1},
        {'retry_delay': -0.5},
    ])
    def test_invalid_values(self, kwargs) -> None:
        values = {'host': "h", 'username': "u", 'credentials': Credentials(password="p")}
        values.update(kwargs)
        with pytest.raises(ConfigurationError):
            TunnelConfig(**values)


class TestEndpoint:

    def test_from_mapping(self) -> None:
        assert Endpoint.from_value({'host': "db", 'port': 5432}) == Endpoint("db", 5432)

    def test_from_none(self) -> None:
        assert Endpoint.from_value(None) == Endpoint()

    def test_str_defaults_host(self) -> None:
        assert str(Endpoint(port=80)) == "localhost:80"


class TestConnectionState:

    def test_terminal_states(self) -> None:
        assert ConnectionState.CLOSED.is_terminal
        assert ConnectionState.FAILED.is_terminal
        assert not ConnectionState.RETRYING.is_terminal
        assert not ConnectionState.READY.is_terminal


class TestEvent:

    def test_tunnel_event_names_are_normalized(self) -> None:
        event = Event(name=TunnelEvent.TCP_CONNECTION)
        assert event.name == "tcp connection"
        assert type(event.name) is str

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValueError):
            Event(name="")

    def test_with_metadata_keeps_identity(self) -> None:
        event = Event(name="error", data=1, metadata={'a': 1})
        copy = event.with_metadata(b=2)
        assert copy.event_id == event.event_id
        assert copy.metadata == {'a': 1, 'b': 2}
        assert event.metadata == {'a': 1}


class TestErrors:

    def test_codes(self) -> None:
        error = TransportError("down", details={'target': "h:22"})
        assert isinstance(error, AditError)
        assert error.code is ErrorCode.TRANSPORT_ERROR
        assert error.message == "down"
        assert error.details == {'target': "h:22"}
