"""Tests para las métricas Prometheus y la distribución a sinks."""

from unittest.mock import Mock

import pytest

from mysensors_gateway.errors import UnknownSensor
from mysensors_gateway.metrics import GatewayMetrics
from mysensors_gateway.network import Network
from mysensors_gateway.protocol import decode
from mysensors_gateway.sinks import FanOut


@pytest.fixture
def network():
    """Fixture con un nodo presentado y un valor numérico y uno de texto."""
    network = Network(clock=lambda: 1_700_000_000.0)
    transmit = Mock()
    for line in [
        "5;2;0;0;6;Temp",
        "5;3;0;0;36;Info",
        "5;2;1;0;0;23.5",
        "5;3;1;0;47;hola",
        "5;255;3;0;0;87",
    ]:
        network.handle_message(decode(line), transmit)
    network.set_node_name(5, "Living")
    return network


@pytest.fixture
def metrics(network):
    return GatewayMetrics(network)


class TestGatewayMetrics:
    """Tests para GatewayMetrics."""

    def test_message_counter(self, metrics):
        metrics.deliver(decode("5;2;1;0;0;23.5"))
        metrics.deliver(decode("5;2;1;0;0;23.6"))

        value = metrics.registry.get_sample_value(
            "mysensors_messages_total", {"node": "5", "type": "set"}
        )
        assert value == 2.0

    def test_error_counter(self, metrics):
        metrics.record_error(UnknownSensor("x"))
        value = metrics.registry.get_sample_value(
            "mysensors_handle_errors_total", {"error": "UnknownSensor"}
        )
        assert value == 1.0

    def test_sensor_values_exported(self, metrics):
        """Test que solo los valores numéricos se exportan como gauge."""
        labels = {
            "node": "5",
            "sensor": "2",
            "node_name": "Living",
            "sensor_type": "S_TEMP",
            "value_type": "V_TEMP",
        }
        assert metrics.registry.get_sample_value("mysensors_sensor_value", labels) == 23.5
        assert metrics.registry.get_sample_value(
            "mysensors_sensor_value", dict(labels, sensor="3", sensor_type="S_INFO", value_type="V_TEXT")
        ) is None

    def test_node_metrics_exported(self, metrics):
        assert metrics.registry.get_sample_value(
            "mysensors_node_battery_level", {"node": "5", "node_name": "Living"}
        ) == 87.0
        assert metrics.registry.get_sample_value(
            "mysensors_node_last_seen_timestamp_seconds", {"node": "5", "node_name": "Living"}
        ) == 1_700_000_000.0
        assert metrics.registry.get_sample_value(
            "mysensors_sensor_updated_timestamp_seconds", {"node": "5", "sensor": "2"}
        ) == 1_700_000_000.0


class TestFanOut:
    """Tests para FanOut."""

    def test_delivers_to_all_sinks(self):
        fan_out = FanOut()
        first, second = Mock(), Mock()
        fan_out.register("first", first)
        fan_out.register("second", second)
        message = decode("5;2;1;0;0;23.5")

        fan_out.deliver(message)

        first.deliver.assert_called_once_with(message)
        second.deliver.assert_called_once_with(message)
        assert fan_out.names == ["first", "second"]

    def test_failing_sink_does_not_block_others(self):
        """Test que un sink que falla no impide la entrega a los demás."""
        fan_out = FanOut()
        broken, healthy = Mock(), Mock()
        broken.deliver.side_effect = RuntimeError("broker caído")
        fan_out.register("broken", broken)
        fan_out.register("healthy", healthy)

        fan_out.deliver(decode("5;2;1;0;0;23.5"))

        healthy.deliver.assert_called_once()

    def test_unregister(self):
        fan_out = FanOut()
        sink = Mock()
        fan_out.register("sink", sink)
        fan_out.unregister("sink")

        fan_out.deliver(decode("5;2;1;0;0;23.5"))

        sink.deliver.assert_not_called()
