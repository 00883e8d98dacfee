"""Gateway MySensors serial hacia MQTT y Prometheus."""

from .config import GatewayConfig, MQTTConfig, SerialConfig
from .handler import MessageHandler
from .main import GatewayService, main
from .mqtt_client import MySensorsMQTTClient
from .network import Network, Node, Sensor
from .protocol import Message, MessageType, decode, encode
from .transport import SerialTransport

__version__ = "0.1.0"

__all__ = [
    "GatewayConfig",
    "MQTTConfig",
    "SerialConfig",
    "GatewayService",
    "MessageHandler",
    "MySensorsMQTTClient",
    "Network",
    "Node",
    "Sensor",
    "Message",
    "MessageType",
    "SerialTransport",
    "decode",
    "encode",
    "main",
]
