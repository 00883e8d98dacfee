"""Configuración del gateway MySensors."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Cargar variables de entorno desde .env antes de leer os.getenv()
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class MQTTConfig:
    """Configuración del broker MQTT."""
    broker: str = os.getenv("MQTT_BROKER", "localhost")
    port: int = int(os.getenv("MQTT_PORT", "1883"))
    username: str | None = os.getenv("MQTT_USERNAME")
    password: str | None = os.getenv("MQTT_PASSWORD")
    use_ssl: bool = _env_bool("MQTT_USE_SSL")
    transport: str = os.getenv("MQTT_TRANSPORT", "tcp")
    client_id: str = os.getenv("MQTT_CLIENT_ID", "mysensors-gateway")
    topic_prefix: str = os.getenv("MQTT_TOPIC_PREFIX", "mysensors")
    qos: int = int(os.getenv("MQTT_QOS", "1"))

    @property
    def publish_topic_prefix(self) -> str:
        """Prefijo de los tópicos donde se publican los mensajes de los nodos."""
        return f"{self.topic_prefix}-out"

    @property
    def subscribe_topic_prefix(self) -> str:
        """Prefijo de los tópicos de comandos hacia los nodos."""
        return f"{self.topic_prefix}-in"


@dataclass
class SerialConfig:
    """Configuración del puerto serial."""
    port: str = os.getenv("SERIAL_PORT", "/dev/ttyUSB0")
    baudrate: int = int(os.getenv("SERIAL_BAUDRATE", "115200"))
    timeout: float = float(os.getenv("SERIAL_TIMEOUT", "1.0"))


@dataclass
class GatewayConfig:
    """Configuración del gateway (estado, servidor de estado y protocolo)."""
    state_file: str = os.getenv("STATE_FILE", ".mysensors-state")
    listen_host: str = os.getenv("LISTEN_HOST", "")
    listen_port: int = int(os.getenv("LISTEN_PORT", "9001"))
    status_interval: float = float(os.getenv("STATUS_INTERVAL", "30"))
    ack_responses: bool = _env_bool("ACK_RESPONSES")
    unit_system: str = os.getenv("UNIT_SYSTEM", "M")
    queue_size: int = int(os.getenv("GATEWAY_QUEUE_SIZE", "1000"))

    def __post_init__(self):
        if self.unit_system not in ("M", "I"):
            raise ValueError(
                f"Sistema de unidades no soportado: '{self.unit_system}'. "
                f"Valores válidos: M (métrico), I (imperial)"
            )
