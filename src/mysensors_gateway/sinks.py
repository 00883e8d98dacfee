"""Distribución de mensajes decodificados a consumidores externos."""

import logging
from typing import Protocol

from .protocol import Message

logger = logging.getLogger(__name__)


class Sink(Protocol):
    """Consumidor de mensajes (MQTT, métricas, consola...)."""

    def deliver(self, message: Message) -> None: ...


class FanOut:
    """Entrega cada mensaje a todos los sinks registrados, en orden."""

    def __init__(self):
        self._sinks: dict[str, Sink] = {}

    def register(self, name: str, sink: Sink) -> None:
        self._sinks[name] = sink
        logger.info(f"Sink registrado: {name}")

    def unregister(self, name: str) -> None:
        self._sinks.pop(name, None)

    @property
    def names(self) -> list[str]:
        return list(self._sinks)

    def deliver(self, message: Message) -> None:
        """Un sink que falla no impide la entrega a los demás."""
        for name, sink in list(self._sinks.items()):
            try:
                sink.deliver(message)
            except Exception as e:
                logger.error(f"Error al entregar mensaje al sink {name}: {e}")
