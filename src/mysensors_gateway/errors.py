"""Excepciones del gateway MySensors."""


class GatewayError(Exception):
    """Error base del gateway."""


class MalformedFrame(GatewayError, ValueError):
    """Trama serial con sintaxis inválida."""


class PayloadTooLong(GatewayError):
    """Payload que excede el máximo del protocolo."""


class UnknownSensor(GatewayError):
    """Mensaje para un par (nodo, sensor) nunca presentado."""


class UnknownNode(UnknownSensor):
    """Mensaje a nivel de nodo para un nodo desconocido."""


class UnsupportedMessage(GatewayError):
    """Combinación de tipo de mensaje y subtipo no soportada."""


class NodeIdsExhausted(GatewayError):
    """No quedan IDs de nodo libres para asignar."""


class TransmitFailed(GatewayError):
    """Error de E/S al escribir en el transporte."""


class SnapshotReadError(GatewayError):
    """Archivo de estado presente pero ilegible."""


class SnapshotWriteError(GatewayError):
    """Error de E/S al guardar el archivo de estado."""
