"""Tests para la configuración del gateway."""

import pytest

from mysensors_gateway.config import GatewayConfig, MQTTConfig, SerialConfig


class TestMQTTConfig:
    """Tests para MQTTConfig."""

    def test_topic_prefixes(self):
        """Test de los prefijos de tópicos de entrada y salida."""
        config = MQTTConfig(topic_prefix="casa")
        assert config.publish_topic_prefix == "casa-out"
        assert config.subscribe_topic_prefix == "casa-in"


class TestSerialConfig:
    """Tests para SerialConfig."""

    def test_explicit_values(self):
        config = SerialConfig(port="/dev/ttyACM0", baudrate=38400, timeout=0.5)
        assert config.port == "/dev/ttyACM0"
        assert config.baudrate == 38400
        assert config.timeout == 0.5


class TestGatewayConfig:
    """Tests para GatewayConfig."""

    def test_explicit_values(self, tmp_path):
        config = GatewayConfig(
            state_file=str(tmp_path / "state.json"),
            listen_port=9100,
            ack_responses=True,
            unit_system="I",
        )
        assert config.listen_port == 9100
        assert config.ack_responses is True
        assert config.unit_system == "I"

    def test_invalid_unit_system(self):
        """Test que un sistema de unidades inválido lanza error."""
        with pytest.raises(ValueError, match="no soportado"):
            GatewayConfig(unit_system="X")
