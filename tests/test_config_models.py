"""
Tests for configuration models.
"""

import pytest

from adit.infrastructure.config.models import (
    ApplicationConfig,
    EndpointConfig,
    ForwardingConfig,
    LoggingConfig,
    SSHConfig,
)


class TestApplicationConfig:
    """Test cases for ApplicationConfig."""

    def test_defaults(self) -> None:
        config = ApplicationConfig()

        assert config.name == "Adit"
        assert config.ssh.port == 22
        assert config.ssh.retries == 0
        assert config.forwarding.mode == "out"
        assert config.logging.level == "INFO"
        assert not config.logging.file_enabled

    def test_from_dict(self) -> None:
        config = ApplicationConfig.from_dict({
            'ssh': {'host': "bastion", 'port': [2200, 2210], 'username': "ops", 'retries': 3},
            'forwarding': {
                'mode': "in",
                'from': {'host': "localhost", 'port': 3000},
                'to': {'host': "0.0.0.0", 'port': 8080},
            },
            'logging': {'level': "DEBUG"},
        })

        assert config.ssh.port == [2200, 2210]
        assert config.forwarding.mode == "in"
        assert config.forwarding.from_ == EndpointConfig("localhost", 3000)
        assert config.forwarding.to.port == 8080
        assert config.logging.level == "DEBUG"

    def test_to_dict_round_trip(self) -> None:
        config = ApplicationConfig(
            ssh=SSHConfig(host="bastion", password="pw"),
            forwarding=ForwardingConfig(to=EndpointConfig("db", 5432))
        )

        data = config.to_dict()

        assert data['forwarding']['from'] == {'host': "localhost", 'port': 0}
        assert ApplicationConfig.from_dict(data).to_dict() == data

    def test_tunnel_settings(self) -> None:
        config = ApplicationConfig(
            ssh=SSHConfig(host="bastion", username="ops", key="~/.ssh/id_ed25519", retries=2),
            forwarding=ForwardingConfig(
                from_=EndpointConfig("localhost", 9000),
                to=EndpointConfig("db", 5432)
            )
        )

        settings = config.to_tunnel_settings()

        assert settings['host'] == "bastion"
        assert settings['key'] == "~/.ssh/id_ed25519"
        assert settings['retries'] == 2
        assert settings['from'] == {'host': "localhost", 'port': 9000}
        assert settings['to'] == {'host': "db", 'port': 5432}

    @pytest.mark.parametrize("ssh", [
        SSHConfig(port=70000),
        SSHConfig(port=[9005, 9000]),
        SSHConfig(port=[1, 2, 3]),
        SSHConfig(retries=-1),
        SSHConfig(retry_delay=-1.0),
        SSHConfig(connect_timeout=0),
    ])
    def test_invalid_ssh_values(self, ssh: SSHConfig) -> None:
        with pytest.raises(ValueError):
            ApplicationConfig(ssh=ssh)

    def test_invalid_mode(self) -> None:
        with pytest.raises(ValueError, match="mode"):
            ApplicationConfig(forwarding=ForwardingConfig(mode="sideways"))

    def test_invalid_endpoint_port(self) -> None:
        with pytest.raises(ValueError):
            ApplicationConfig(forwarding=ForwardingConfig(to=EndpointConfig(port=-1)))


class TestLoggingConfig:

    def test_from_dict(self) -> None:
        config = LoggingConfig.from_dict({'level': "WARNING", 'file_enabled': True})
        assert config.level == "WARNING"
        assert config.file_enabled
        assert config.backup_count == 5

    def test_keys_match_the_loguru_sinks(self) -> None:
        assert set(LoggingConfig().to_dict()) == {
            'level', 'log_directory', 'max_file_size', 'backup_count',
            'console_enabled', 'file_enabled',
        }
