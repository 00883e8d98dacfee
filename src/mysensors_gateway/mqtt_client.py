"""Cliente MQTT que publica los mensajes de la red MySensors."""

import logging
import ssl
from typing import Callable

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

from .config import MQTTConfig
from .errors import GatewayError, MalformedFrame
from .protocol import Message, parse_fields

logger = logging.getLogger(__name__)


class MySensorsMQTTClient:
    """
    Sink MQTT del gateway.

    Publica cada mensaje recibido de los nodos en
    {prefix}-out/NODE/SENSOR/COMMAND/ACK/TYPE y reenvía al transporte los
    mensajes publicados en {prefix}-in/NODE/SENSOR/COMMAND/ACK/TYPE.
    """

    def __init__(self, config: MQTTConfig, transmit: Callable[[Message], None]):
        """
        Inicializa el cliente MQTT.

        Args:
            config: Configuración del broker MQTT
            transmit: Función que envía un mensaje hacia los nodos
        """
        self.config = config
        self.transmit = transmit
        self.client = mqtt.Client(
            CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            transport=config.transport,
        )

        if config.transport == "websockets":
            self.client.ws_set_options(path="/mqtt")

        # Configurar callbacks
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        self.client.on_disconnect = self._on_disconnect

        # Configurar SSL/TLS si está habilitado
        if config.use_ssl:
            self.client.tls_set(tls_version=ssl.PROTOCOL_TLS_CLIENT)

        # Configurar autenticación si está disponible
        if config.username and config.password:
            self.client.username_pw_set(config.username, config.password)

    @property
    def command_topic(self) -> str:
        """Tópico wildcard de comandos hacia los nodos."""
        return f"{self.config.subscribe_topic_prefix}/+/+/+/+/+"

    def topic_for(self, message: Message) -> str:
        """Tópico de publicación de un mensaje recibido."""
        return "/".join([
            self.config.publish_topic_prefix,
            str(message.node_id),
            str(message.sensor_id),
            str(int(message.message_type)),
            str(int(message.ack)),
            str(message.sub_type),
        ])

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback cuando se conecta al broker MQTT."""
        if reason_code == 0:
            logger.info("✅ CONECTADO exitosamente al broker MQTT")
            logger.info(f"   Broker: {self.config.broker}:{self.config.port}")
            client.subscribe(self.command_topic)
            logger.info(f"✅ Suscrito a: {self.command_topic}")
        else:
            logger.error(f"❌ Error al conectar al broker MQTT: {reason_code}")
            logger.error(f"   Broker: {self.config.broker}:{self.config.port}")
            logger.error(f"   Usuario: {self.config.username}")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        """Callback cuando se desconecta del broker MQTT."""
        if reason_code != 0:
            logger.warning(f"Desconexión inesperada del broker MQTT: {reason_code}")
        else:
            logger.info("Desconectado del broker MQTT")

    def _on_message(self, client, userdata, msg):
        """
        Callback cuando se recibe un comando MQTT.
        Convierte el tópico y el payload en un Message y lo transmite.
        """
        try:
            topic_parts = msg.topic.split("/")
            if len(topic_parts) != 6 or topic_parts[0] != self.config.subscribe_topic_prefix:
                logger.warning(f"Tópico con formato inesperado: {msg.topic}")
                return

            payload = msg.payload.decode("utf-8")
            try:
                message = parse_fields(topic_parts[1:] + [payload])
            except MalformedFrame as e:
                logger.warning(f"Comando inválido en {msg.topic}: {e}")
                return

            logger.info(f"Comando recibido en {msg.topic}: {payload!r}")
            self.transmit(message)

        except GatewayError as e:
            logger.error(f"Error al transmitir comando de {msg.topic}: {e}")
        except Exception as e:
            logger.error(f"Error al procesar mensaje: {e}", exc_info=True)

    def deliver(self, message: Message) -> None:
        """Publica un mensaje de la red en su tópico."""
        topic = self.topic_for(message)
        result = self.client.publish(topic, message.payload, qos=self.config.qos)

        if result.rc == mqtt.MQTT_ERR_SUCCESS:
            logger.debug(f"Mensaje publicado en {topic}")
        else:
            logger.error(f"Error al publicar en {topic}, código: {result.rc}")

    def connect(self):
        """Conecta al broker MQTT."""
        try:
            logger.info("=== Intentando conectar a MQTT ===")
            logger.info(f"Broker: {self.config.broker}:{self.config.port}")
            logger.info(f"Transporte: {self.config.transport}")
            logger.info(f"SSL: {'habilitado' if self.config.use_ssl else 'deshabilitado'}")
            logger.info(f"Usuario: {self.config.username}")
            logger.info(f"Password: {'***' if self.config.password else 'None'}")
            logger.info("==================================")

            self.client.connect(self.config.broker, self.config.port, keepalive=60)
        except Exception as e:
            logger.error(f"❌ Error al conectar con el broker MQTT: {e}")
            raise

    def start(self):
        """Inicia el loop del cliente MQTT en un hilo propio."""
        logger.info("Iniciando cliente MQTT...")
        self.client.loop_start()

    def stop(self):
        """Detiene el cliente MQTT."""
        logger.info("Deteniendo cliente MQTT...")
        self.client.disconnect()
        self.client.loop_stop()
