"""Punto de entrada principal del gateway MySensors."""

import logging
import os
import queue
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

import serial

from .config import GatewayConfig, MQTTConfig, SerialConfig
from .errors import GatewayError, SnapshotReadError, SnapshotWriteError
from .handler import MessageHandler
from .metrics import GatewayMetrics
from .mqtt_client import MySensorsMQTTClient
from .network import Network
from .protocol import Message
from .sinks import FanOut
from .status_server import StatusServer
from .transport import SerialTransport

logger = logging.getLogger(__name__)

# Segundos entre verificaciones de cierre en el lazo de consumo
SHUTDOWN_POLL_INTERVAL = 0.5


def setup_logging():
    """Configura logging a stdout y a archivo en LOG_DIR."""
    log_dir = os.getenv("LOG_DIR", "logs")
    Path(log_dir).mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(os.path.join(log_dir, 'mysensors_gateway.log'))
        ]
    )


class GatewayService:
    """Servicio principal: une transporte, registro y sinks."""

    def __init__(
        self,
        gateway_config: Optional[GatewayConfig] = None,
        serial_config: Optional[SerialConfig] = None,
        mqtt_config: Optional[MQTTConfig] = None,
    ):
        """Inicializa el servicio."""
        self.config = gateway_config or GatewayConfig()
        self.serial_config = serial_config or SerialConfig()
        self.mqtt_config = mqtt_config or MQTTConfig()

        self.network = Network(
            ack_responses=self.config.ack_responses,
            unit_system=self.config.unit_system,
        )
        self.messages: "queue.Queue[Optional[Message]]" = queue.Queue(
            maxsize=self.config.queue_size
        )
        self.transport = SerialTransport(self.serial_config)
        self.handler = MessageHandler(self.transport, self.messages)
        self.metrics = GatewayMetrics(self.network)
        self.sinks = FanOut()
        self.mqtt_client: Optional[MySensorsMQTTClient] = None
        self.status_server: Optional[StatusServer] = None
        self.running = False
        self._stopped = threading.Event()
        self._shutdown = threading.Event()

    def process(self, message: Message) -> None:
        """Entrega un mensaje a los sinks y lo aplica al registro."""
        self.sinks.deliver(message)
        try:
            self.network.handle_message(message, self.handler.transmit)
        except GatewayError as e:
            self.metrics.record_error(e)
            logger.warning(f"HandleMessage: {e}")

    def consume(self) -> None:
        """
        Consume la cola hasta recibir el centinela del lazo de lectura o
        hasta que se solicite el cierre.

        El cierre solo se atiende entre mensajes, nunca a mitad de
        handle_message.
        """
        while not self._shutdown.is_set():
            try:
                message = self.messages.get(timeout=SHUTDOWN_POLL_INTERVAL)
            except queue.Empty:
                continue
            if message is None:
                logger.error("El lazo de lectura terminó, deteniendo gateway")
                return
            self.process(message)

    def request_shutdown(self) -> None:
        """Solicita el cierre; start() guarda el estado al salir del consumo."""
        self._shutdown.set()
        self.handler.stop()

    def _print_status(self):
        """Imprime periódicamente el estado de la red en stdout."""
        while not self._stopped.wait(self.config.status_interval):
            print(self.network.status_string(), flush=True)

    def save_state(self) -> None:
        """
        Guarda el registro en el archivo de estado.

        Raises:
            SnapshotWriteError: Si no se pudo escribir
        """
        self.network.save_snapshot(self.config.state_file)

    def start(self):
        """Inicia el gateway (bloqueante hasta que termine el lazo de lectura o llegue una señal)."""
        logger.info("=== Iniciando MySensors Gateway ===")
        logger.info(f"Puerto serial: {self.serial_config.port} @ {self.serial_config.baudrate}")
        logger.info(f"MQTT Broker: {self.mqtt_config.broker}:{self.mqtt_config.port}")
        logger.info(f"Archivo de estado: {self.config.state_file}")

        try:
            try:
                self.transport.connect()
            except serial.SerialException as e:
                logger.error(f"Error abriendo puerto serial {self.serial_config.port}: {e}")
                sys.exit(1)

            try:
                self.network.load_snapshot(self.config.state_file)
            except SnapshotReadError as e:
                logger.error(f"Error cargando estado: {e}")
                sys.exit(1)

            self.mqtt_client = MySensorsMQTTClient(self.mqtt_config, self.handler.transmit)
            self.mqtt_client.connect()
            self.mqtt_client.start()

            self.sinks.register("mqtt", self.mqtt_client)
            self.sinks.register("metrics", self.metrics)

            self.status_server = StatusServer(
                self.network,
                self.metrics.registry,
                self.config.listen_host,
                self.config.listen_port,
            )
            self.status_server.start()

            # Configurar manejador de señales para guardar estado y salir
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)

            self.running = True

            threading.Thread(
                target=self._print_status, daemon=True, name="status-printer"
            ).start()
            threading.Thread(
                target=self.handler.start, daemon=True, name="serial-reader"
            ).start()

            logger.info("Gateway iniciado correctamente. Esperando mensajes...")

            # Consumir mensajes en el hilo principal
            self.consume()

        except KeyboardInterrupt:
            logger.info("Interrupción de teclado recibida")
        except SystemExit:
            raise
        except Exception as e:
            logger.error(f"Error fatal: {e}", exc_info=True)
            sys.exit(1)
        finally:
            self.stop()

    def stop(self):
        """Guarda el estado y detiene el gateway."""
        if not self.running:
            return

        logger.info("Deteniendo gateway...")
        self.running = False
        self._stopped.set()

        try:
            self.save_state()
        except SnapshotWriteError as e:
            logger.error(f"Error escribiendo archivo de estado [{self.config.state_file}]: {e}")

        self.handler.stop()

        if self.mqtt_client:
            try:
                self.mqtt_client.stop()
            except Exception as e:
                logger.error(f"Error al detener cliente MQTT: {e}")

        if self.status_server:
            self.status_server.stop()

        try:
            self.transport.disconnect()
        except serial.SerialException as e:
            logger.error(f"Error al cerrar el puerto serial: {e}")

        logger.info("Gateway detenido")

    def _signal_handler(self, signum, frame):
        """
        Maneja señales del sistema para cierre graceful.

        Corre en el hilo principal, que puede estar dentro de
        handle_message con el lock del registro tomado: solo marca el
        cierre y deja que start() guarde el estado.
        """
        logger.info(f"Señal {signum} recibida, iniciando cierre...")
        self.request_shutdown()


def main():
    """Función principal."""
    setup_logging()
    service = GatewayService()
    service.start()


if __name__ == "__main__":
    main()
