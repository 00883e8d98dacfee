"""Métricas Prometheus del gateway."""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter
from prometheus_client.core import GaugeMetricFamily

from .network import Network
from .protocol import Message, SensorType, VariableType


def _name(enum_cls, value: Optional[int]) -> str:
    if value is None:
        return ""
    try:
        return enum_cls(value).name
    except ValueError:
        return str(value)


class NetworkCollector:
    """Exporta el último valor de cada sensor a partir del registro."""

    def __init__(self, network: Network):
        self.network = network

    def collect(self):
        values = GaugeMetricFamily(
            "mysensors_sensor_value",
            "Último valor numérico reportado por el sensor",
            labels=["node", "sensor", "node_name", "sensor_type", "value_type"],
        )
        updated = GaugeMetricFamily(
            "mysensors_sensor_updated_timestamp_seconds",
            "Momento del último valor del sensor",
            labels=["node", "sensor"],
        )
        last_seen = GaugeMetricFamily(
            "mysensors_node_last_seen_timestamp_seconds",
            "Momento del último mensaje del nodo",
            labels=["node", "node_name"],
        )
        battery = GaugeMetricFamily(
            "mysensors_node_battery_level",
            "Nivel de batería reportado por el nodo (%)",
            labels=["node", "node_name"],
        )

        for node in self.network.nodes():
            node_id = str(node.node_id)
            node_name = node.name or ""
            if node.last_seen is not None:
                last_seen.add_metric([node_id, node_name], node.last_seen)
            if node.battery_level is not None:
                battery.add_metric([node_id, node_name], node.battery_level)

            for sensor in node.sensors.values():
                sensor_id = str(sensor.sensor_id)
                if sensor.updated is not None:
                    updated.add_metric([node_id, sensor_id], sensor.updated)
                if sensor.value is None:
                    continue
                try:
                    value = float(sensor.value)
                except ValueError:
                    # Valores de texto (V_TEXT, V_RGB...) no son exportables
                    continue
                values.add_metric(
                    [
                        node_id,
                        sensor_id,
                        node_name,
                        _name(SensorType, sensor.sensor_type),
                        _name(VariableType, sensor.value_type),
                    ],
                    value,
                )

        yield values
        yield updated
        yield last_seen
        yield battery


class GatewayMetrics:
    """Sink de métricas: cuenta mensajes y errores, y expone el estado de la red."""

    def __init__(self, network: Network, registry: Optional[CollectorRegistry] = None):
        """
        Args:
            network: Registro de nodos a exportar
            registry: Registro Prometheus; por defecto uno nuevo
        """
        self.registry = registry or CollectorRegistry()
        self.messages = Counter(
            "mysensors_messages",
            "Mensajes recibidos por nodo y tipo",
            ["node", "type"],
            registry=self.registry,
        )
        self.errors = Counter(
            "mysensors_handle_errors",
            "Errores al procesar mensajes por tipo de error",
            ["error"],
            registry=self.registry,
        )
        self.registry.register(NetworkCollector(network))

    def deliver(self, message: Message) -> None:
        self.messages.labels(
            node=str(message.node_id),
            type=message.message_type.name.lower(),
        ).inc()

    def record_error(self, error: Exception) -> None:
        self.errors.labels(error=type(error).__name__).inc()
