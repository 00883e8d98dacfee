"""Lazo de lectura del transporte y transmisión de mensajes."""

import logging
import queue
import threading
from typing import Optional, Protocol

import serial

from .errors import MalformedFrame, TransmitFailed
from .protocol import Message, decode, encode

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Canal de bytes que el handler necesita (p. ej. SerialTransport)."""

    @property
    def is_open(self) -> bool: ...

    def readline(self) -> bytes: ...

    def write(self, data: bytes) -> None: ...


class MessageHandler:
    """
    Lee tramas del transporte, las decodifica y las entrega en una cola.

    El lazo de lectura es el único productor de mensajes. Al terminar
    deposita None en la cola para que el consumidor sepa que no habrá más.
    """

    def __init__(self, transport: Transport, outbound: "queue.Queue[Optional[Message]]"):
        """
        Inicializa el handler.

        Args:
            transport: Canal de bytes bidireccional
            outbound: Cola donde se depositan los mensajes decodificados
        """
        self.transport = transport
        self.outbound = outbound
        self.running = False
        self.decode_errors = 0
        self._write_lock = threading.Lock()

    def start(self) -> None:
        """Ejecuta el lazo de lectura (bloqueante) hasta que el transporte se cierre."""
        self.running = True
        buffer = b""
        logger.info("Lazo de lectura iniciado")
        try:
            while self.running:
                try:
                    chunk = self.transport.readline()
                except (serial.SerialException, OSError) as e:
                    logger.error(f"Error de lectura en el transporte: {e}")
                    break

                if not chunk:
                    if not self.transport.is_open:
                        logger.info("Transporte cerrado")
                        break
                    continue

                # readline puede retornar líneas parciales al vencer el timeout
                buffer += chunk
                if not buffer.endswith(b"\n"):
                    continue
                raw, buffer = buffer, b""
                self._process_line(raw)
        finally:
            self.running = False
            self.outbound.put(None)
            logger.info("Lazo de lectura terminado")

    def _process_line(self, raw: bytes) -> None:
        # Solo se quita el terminador: el payload conserva sus espacios
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        if not line.strip():
            return
        try:
            message = decode(line)
        except MalformedFrame as e:
            self.decode_errors += 1
            logger.warning(f"Trama descartada {line!r}: {e}")
            return
        logger.debug(f"Recibido: {line}")
        self.outbound.put(message)

    def stop(self) -> None:
        """Solicita la terminación del lazo de lectura."""
        self.running = False

    def transmit(self, message: Message) -> None:
        """
        Serializa y escribe un mensaje en el transporte.

        Seguro para llamar desde varios hilos: las escrituras se serializan
        para que las tramas nunca se intercalen.

        Raises:
            PayloadTooLong: Si el payload excede el máximo del protocolo
            TransmitFailed: Si falla la escritura
        """
        frame = encode(message)
        with self._write_lock:
            try:
                self.transport.write(frame.encode("utf-8"))
            except (serial.SerialException, OSError) as e:
                logger.error(f"Error al transmitir {frame.strip()!r}: {e}")
                raise TransmitFailed(f"Error al escribir en el transporte: {e}") from e
        logger.debug(f"Enviado: {frame.strip()}")
