"""Transporte serial hacia el gateway MySensors."""

import logging
from typing import Optional

import serial

from .config import SerialConfig

logger = logging.getLogger(__name__)


class SerialTransport:
    """Canal de bytes bidireccional sobre el puerto serial."""

    def __init__(self, config: SerialConfig):
        """
        Inicializa el transporte.

        Args:
            config: Configuración del puerto serial
        """
        self.config = config
        self.connection: Optional[serial.Serial] = None

    @property
    def is_open(self) -> bool:
        return bool(self.connection and self.connection.is_open)

    def connect(self) -> None:
        """Abre el puerto serial."""
        try:
            self.connection = serial.Serial(
                port=self.config.port,
                baudrate=self.config.baudrate,
                timeout=self.config.timeout,
            )
            logger.info(
                f"Conectado al gateway en {self.config.port} "
                f"({self.config.baudrate} baudios)"
            )
        except serial.SerialException as e:
            logger.error(f"Error al abrir el puerto serial {self.config.port}: {e}")
            raise

    def disconnect(self) -> None:
        """Cierra el puerto serial."""
        if self.connection and self.connection.is_open:
            self.connection.close()
            logger.info("Desconectado del gateway")

    def readline(self) -> bytes:
        """
        Lee hasta un '\\n' o hasta que venza el timeout.

        Puede retornar una línea parcial (sin terminador) o b"" si no
        llegaron datos.

        Raises:
            serial.SerialException: Si el puerto no está abierto o falla la lectura
        """
        if not self.is_open:
            raise serial.SerialException("El puerto serial no está abierto")
        return self.connection.readline()

    def write(self, data: bytes) -> None:
        """
        Escribe bytes en el puerto serial.

        Raises:
            serial.SerialException: Si el puerto no está abierto o falla la escritura
        """
        if not self.is_open:
            raise serial.SerialException("El puerto serial no está abierto")
        self.connection.write(data)
        self.connection.flush()

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()
