"""Tests para el cliente MQTT."""

from unittest.mock import MagicMock, Mock

import paho.mqtt.client as mqtt
import pytest

from mysensors_gateway.config import MQTTConfig
from mysensors_gateway.errors import TransmitFailed
from mysensors_gateway.mqtt_client import MySensorsMQTTClient
from mysensors_gateway.protocol import Message, MessageType


@pytest.fixture
def mqtt_config():
    """Fixture con configuración MQTT de prueba."""
    return MQTTConfig(
        broker="test.mosquitto.org",
        port=1883,
        topic_prefix="mysensors",
        qos=1,
    )


@pytest.fixture
def transmit():
    """Fixture que simula la transmisión hacia los nodos."""
    return Mock()


@pytest.fixture
def mqtt_client(mqtt_config, transmit):
    """Fixture con cliente MQTT configurado."""
    client = MySensorsMQTTClient(mqtt_config, transmit)
    client.client.publish = MagicMock()
    client.client.publish.return_value.rc = mqtt.MQTT_ERR_SUCCESS
    return client


def command(topic, payload=b"1"):
    msg = MagicMock()
    msg.topic = topic
    msg.payload = payload
    return msg


class TestMySensorsMQTTClient:
    """Tests para MySensorsMQTTClient."""

    def test_init(self, mqtt_client, mqtt_config):
        """Test de inicialización del cliente."""
        assert mqtt_client.config == mqtt_config
        assert mqtt_client.client is not None
        assert mqtt_client.command_topic == "mysensors-in/+/+/+/+/+"

    def test_on_connect_success(self, mqtt_client):
        """Test de callback on_connect exitoso."""
        mock_client = MagicMock()

        mqtt_client._on_connect(mock_client, None, None, 0, None)

        mock_client.subscribe.assert_called_once_with("mysensors-in/+/+/+/+/+")

    def test_on_connect_failure(self, mqtt_client):
        """Test que no se suscribe si la conexión falla."""
        mock_client = MagicMock()

        mqtt_client._on_connect(mock_client, None, None, 5, None)

        mock_client.subscribe.assert_not_called()

    def test_deliver_publishes_message(self, mqtt_client):
        """Test de publicación de un mensaje de la red."""
        mqtt_client.deliver(Message(5, 2, MessageType.SET, False, 0, "23.5"))

        mqtt_client.client.publish.assert_called_once_with(
            "mysensors-out/5/2/1/0/0", "23.5", qos=1
        )

    def test_deliver_publish_error_logged(self, mqtt_client):
        """Test que un error de publicación no lanza excepción."""
        mqtt_client.client.publish.return_value.rc = mqtt.MQTT_ERR_NO_CONN

        mqtt_client.deliver(Message(5, 2, MessageType.SET, False, 0, "23.5"))

    def test_command_is_transmitted(self, mqtt_client, transmit):
        """Test que un comando MQTT se transmite como mensaje."""
        mqtt_client._on_message(None, None, command("mysensors-in/7/1/1/0/2", b"1"))

        transmit.assert_called_once_with(
            Message(7, 1, MessageType.SET, False, 2, "1")
        )

    def test_command_with_invalid_topic(self, mqtt_client, transmit):
        """Test que tópicos con formato inesperado se ignoran."""
        mqtt_client._on_message(None, None, command("mysensors-in/7/1/1"))
        mqtt_client._on_message(None, None, command("otro-in/7/1/1/0/2"))
        mqtt_client._on_message(None, None, command("mysensors-in/x/1/1/0/2"))

        transmit.assert_not_called()

    def test_command_transmit_failure(self, mqtt_client, transmit):
        """Test que un fallo al transmitir el comando se registra sin propagar."""
        transmit.side_effect = TransmitFailed("puerto cerrado")

        mqtt_client._on_message(None, None, command("mysensors-in/7/1/1/0/2"))

        transmit.assert_called_once()

    def test_websockets_transport(self, transmit):
        """Test de configuración con transporte websockets."""
        config = MQTTConfig(broker="localhost", port=9001, transport="websockets")
        client = MySensorsMQTTClient(config, transmit)
        assert client.client is not None
