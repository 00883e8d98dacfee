"""Registro de nodos y sensores de la red MySensors."""

import copy
import json
import logging
import os
import tempfile
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .errors import (
    GatewayError,
    NodeIdsExhausted,
    SnapshotReadError,
    SnapshotWriteError,
    TransmitFailed,
    UnknownNode,
    UnknownSensor,
    UnsupportedMessage,
)
from .protocol import (
    BROADCAST_ID,
    GATEWAY_ID,
    MAX_ID,
    NODE_SENSOR_ID,
    InternalType,
    Message,
    MessageType,
    SensorType,
    VariableType,
)

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

# Rango de IDs asignables a nodos nuevos
FIRST_NODE_ID = 1
LAST_NODE_ID = 254

NODE_TYPES = (SensorType.S_ARDUINO_NODE, SensorType.S_ARDUINO_REPEATER_NODE)

# Internos que solo indican que el nodo sigue vivo
LIVENESS_TYPES = (
    InternalType.I_HEARTBEAT_RESPONSE,
    InternalType.I_PRE_SLEEP_NOTIFICATION,
    InternalType.I_POST_SLEEP_NOTIFICATION,
    InternalType.I_DISCOVER_RESPONSE,
)

# Internos del propio gateway que solo se registran en el log
LOG_ONLY_TYPES = (
    InternalType.I_LOG_MESSAGE,
    InternalType.I_GATEWAY_READY,
    InternalType.I_VERSION,
    InternalType.I_DEBUG,
)

Transmit = Callable[[Message], None]


@dataclass
class Sensor:
    """Sensor (canal de medida o actuador) de un nodo."""
    sensor_id: int
    sensor_type: int
    description: str = ""
    value: Optional[str] = None
    value_type: Optional[int] = None
    updated: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "type": self.sensor_type,
            "description": self.description,
            "value": self.value,
            "value_type": self.value_type,
            "updated": self.updated,
        }

    @classmethod
    def from_dict(cls, sensor_id: int, data: dict) -> "Sensor":
        return cls(
            sensor_id=sensor_id,
            sensor_type=int(data.get("type", SensorType.S_CUSTOM)),
            description=str(data.get("description", "")),
            value=data.get("value"),
            value_type=data.get("value_type"),
            updated=data.get("updated"),
        )


@dataclass
class Node:
    """Dispositivo físico de la red."""
    node_id: int
    name: Optional[str] = None
    node_type: Optional[int] = None
    protocol_version: Optional[str] = None
    sketch_name: Optional[str] = None
    sketch_version: Optional[str] = None
    battery_level: Optional[int] = None
    last_seen: Optional[float] = None
    sensors: dict[int, Sensor] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "node_type": self.node_type,
            "protocol_version": self.protocol_version,
            "sketch_name": self.sketch_name,
            "sketch_version": self.sketch_version,
            "battery_level": self.battery_level,
            "last_seen": self.last_seen,
            "sensors": {
                str(sensor_id): sensor.to_dict()
                for sensor_id, sensor in sorted(self.sensors.items())
            },
        }

    @classmethod
    def from_dict(cls, node_id: int, data: dict) -> "Node":
        sensors = {
            sensor.sensor_id: sensor
            for sensor in (
                Sensor.from_dict(_snapshot_id(sensor_id, "sensor"), sensor_data)
                for sensor_id, sensor_data in data.get("sensors", {}).items()
            )
        }
        return cls(
            node_id=node_id,
            name=data.get("name"),
            node_type=data.get("node_type"),
            protocol_version=data.get("protocol_version"),
            sketch_name=data.get("sketch_name"),
            sketch_version=data.get("sketch_version"),
            battery_level=data.get("battery_level"),
            last_seen=data.get("last_seen"),
            sensors=sensors,
        )


def _format_time(timestamp: Optional[float]) -> str:
    if timestamp is None:
        return "nunca"
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S UTC")


def _snapshot_id(key: str, kind: str) -> int:
    value = int(key)
    if not 0 <= value <= MAX_ID:
        raise ValueError(f"ID de {kind} fuera de rango: {key!r}")
    return value


def _enum_name(enum_cls, value: Optional[int]) -> str:
    if value is None:
        return "?"
    try:
        return enum_cls(value).name
    except ValueError:
        return str(value)


class Network:
    """
    Modelo en memoria de todos los nodos y sensores conocidos.

    Es la única fuente de verdad del estado de la red. Todas las lecturas
    y escrituras pasan por un mismo lock, así que status_string() y
    save_snapshot() nunca observan un nodo a medio actualizar.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        ack_responses: bool = False,
        unit_system: str = "M",
    ):
        """
        Inicializa un registro vacío.

        Args:
            clock: Función que retorna el tiempo actual en segundos epoch
            ack_responses: Si es True, los SET con ack se devuelven como eco
            unit_system: Respuesta a I_CONFIG ("M" métrico, "I" imperial)
        """
        self.clock = clock
        self.ack_responses = ack_responses
        self.unit_system = unit_system
        self._nodes: dict[int, Node] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Procesamiento de mensajes
    # ------------------------------------------------------------------

    def handle_message(self, message: Message, transmit: Transmit) -> None:
        """
        Aplica un mensaje entrante al registro.

        Las respuestas del protocolo se generan bajo el lock y se
        transmiten después de liberarlo. Un fallo de transmisión no
        revierte la mutación ya aplicada.

        Raises:
            UnknownSensor: SET/REQUEST para un sensor nunca presentado
            UnknownNode: Interno de nodo para un nodo desconocido
            UnsupportedMessage: Tipo o subtipo no soportado
            NodeIdsExhausted: No hay IDs libres para I_ID_REQUEST
            TransmitFailed: Error al enviar una respuesta
        """
        handlers = {
            MessageType.PRESENTATION: self._handle_presentation,
            MessageType.SET: self._handle_set,
            MessageType.REQUEST: self._handle_request,
            MessageType.INTERNAL: self._handle_internal,
        }
        handler = handlers.get(message.message_type)
        if handler is None:
            raise UnsupportedMessage(
                f"Tipo de mensaje no soportado: {message.message_type.name}"
            )

        with self._lock:
            responses = handler(message)

        for response in responses:
            try:
                transmit(response)
            except GatewayError:
                raise
            except Exception as e:
                raise TransmitFailed(
                    f"Error al transmitir respuesta a nodo {response.node_id}: {e}"
                ) from e

    def _handle_presentation(self, message: Message) -> list[Message]:
        try:
            sensor_type = SensorType(message.sub_type)
        except ValueError:
            raise UnsupportedMessage(
                f"Tipo de sensor desconocido en presentación: {message.sub_type}"
            ) from None

        node_level = message.sensor_id == NODE_SENSOR_ID
        if node_level and sensor_type not in NODE_TYPES:
            raise UnsupportedMessage(
                f"Presentación de nodo con tipo inválido: {sensor_type.name}"
            )

        node = self._nodes.get(message.node_id)
        if node is None:
            node = Node(node_id=message.node_id)
            self._nodes[message.node_id] = node
            logger.info(f"Nuevo nodo presentado: {message.node_id}")
        node.last_seen = self.clock()

        if node_level:
            node.node_type = int(sensor_type)
            node.protocol_version = message.payload or None
            return []

        sensor = node.sensors.get(message.sensor_id)
        if sensor is None:
            node.sensors[message.sensor_id] = Sensor(
                sensor_id=message.sensor_id,
                sensor_type=int(sensor_type),
                description=message.payload,
            )
            logger.info(
                f"Nuevo sensor presentado: nodo {message.node_id}, "
                f"sensor {message.sensor_id} ({sensor_type.name})"
            )
        else:
            sensor.sensor_type = int(sensor_type)
            sensor.description = message.payload
        return []

    def _get_sensor(self, message: Message) -> Sensor:
        node = self._nodes.get(message.node_id)
        sensor = node.sensors.get(message.sensor_id) if node else None
        if sensor is None:
            raise UnknownSensor(
                f"Sensor no presentado: nodo {message.node_id}, "
                f"sensor {message.sensor_id}"
            )
        return sensor

    def _check_variable_type(self, message: Message) -> VariableType:
        try:
            return VariableType(message.sub_type)
        except ValueError:
            raise UnsupportedMessage(
                f"Tipo de variable desconocido: {message.sub_type}"
            ) from None

    def _handle_set(self, message: Message) -> list[Message]:
        sensor = self._get_sensor(message)
        value_type = self._check_variable_type(message)

        now = self.clock()
        sensor.value = message.payload
        sensor.value_type = int(value_type)
        sensor.updated = now
        self._nodes[message.node_id].last_seen = now

        if message.ack and self.ack_responses:
            return [message]
        return []

    def _handle_request(self, message: Message) -> list[Message]:
        sensor = self._get_sensor(message)
        value_type = self._check_variable_type(message)
        self._nodes[message.node_id].last_seen = self.clock()
        return [message.reply(MessageType.SET, int(value_type), sensor.value or "")]

    def _handle_internal(self, message: Message) -> list[Message]:
        try:
            internal = InternalType(message.sub_type)
        except ValueError:
            raise UnsupportedMessage(
                f"Tipo interno desconocido: {message.sub_type}"
            ) from None

        if internal in LOG_ONLY_TYPES:
            logger.info(
                f"Nodo {message.node_id} {internal.name}: {message.payload}"
            )
            return []

        if internal == InternalType.I_ID_REQUEST:
            return [self._assign_node_id(message)]

        if internal == InternalType.I_TIME:
            return [message.reply(
                MessageType.INTERNAL, InternalType.I_TIME, str(int(self.clock()))
            )]

        if internal == InternalType.I_CONFIG:
            return [message.reply(
                MessageType.INTERNAL, InternalType.I_CONFIG, self.unit_system
            )]

        node = self._nodes.get(message.node_id)
        if internal in LIVENESS_TYPES or internal in (
            InternalType.I_BATTERY_LEVEL,
            InternalType.I_SKETCH_NAME,
            InternalType.I_SKETCH_VERSION,
        ):
            if node is None:
                raise UnknownNode(
                    f"{internal.name} de nodo desconocido: {message.node_id}"
                )
        else:
            raise UnsupportedMessage(f"Mensaje interno no soportado: {internal.name}")

        if internal == InternalType.I_BATTERY_LEVEL:
            try:
                level = int(message.payload)
            except ValueError:
                raise UnsupportedMessage(
                    f"Nivel de batería inválido: {message.payload!r}"
                ) from None
            node.battery_level = level
        elif internal == InternalType.I_SKETCH_NAME:
            node.sketch_name = message.payload
        elif internal == InternalType.I_SKETCH_VERSION:
            node.sketch_version = message.payload

        node.last_seen = self.clock()
        return []

    def _assign_node_id(self, message: Message) -> Message:
        for node_id in range(FIRST_NODE_ID, LAST_NODE_ID + 1):
            if node_id not in self._nodes:
                break
        else:
            raise NodeIdsExhausted("No quedan IDs de nodo libres")

        self._nodes[node_id] = Node(node_id=node_id, last_seen=self.clock())
        logger.info(f"ID {node_id} asignado a nodo nuevo")
        return Message(
            node_id=BROADCAST_ID,
            sensor_id=NODE_SENSOR_ID,
            message_type=MessageType.INTERNAL,
            ack=False,
            sub_type=InternalType.I_ID_RESPONSE,
            payload=str(node_id),
        )

    # ------------------------------------------------------------------
    # Consultas y administración
    # ------------------------------------------------------------------

    def nodes(self) -> list[Node]:
        """Copia profunda de todos los nodos, ordenados por ID."""
        with self._lock:
            return [copy.deepcopy(self._nodes[k]) for k in sorted(self._nodes)]

    def get_node(self, node_id: int) -> Optional[Node]:
        """Copia de un nodo, o None si no existe."""
        with self._lock:
            node = self._nodes.get(node_id)
            return copy.deepcopy(node) if node else None

    def set_node_name(self, node_id: int, name: Optional[str]) -> None:
        """Asigna un nombre legible a un nodo existente."""
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                raise UnknownNode(f"Nodo desconocido: {node_id}")
            node.name = name

    def remove_node(self, node_id: int) -> bool:
        """Elimina un nodo y sus sensores. Retorna False si no existía."""
        with self._lock:
            removed = self._nodes.pop(node_id, None) is not None
        if removed:
            logger.info(f"Nodo {node_id} eliminado")
        return removed

    def status_string(self) -> str:
        """Volcado legible de todos los nodos y sensores, ordenado por ID."""
        with self._lock:
            if not self._nodes:
                return "No hay nodos conocidos."

            lines = []
            for node_id in sorted(self._nodes):
                node = self._nodes[node_id]
                label = f' "{node.name}"' if node.name else ""
                kind = "gateway" if node_id == GATEWAY_ID else _enum_name(
                    SensorType, node.node_type
                )
                sketch = " ".join(
                    part for part in (node.sketch_name, node.sketch_version) if part
                ) or "-"
                battery = (
                    f"{node.battery_level}%" if node.battery_level is not None else "-"
                )
                lines.append(
                    f"Nodo {node_id}{label} [{kind}] sketch: {sketch}, "
                    f"batería: {battery}, visto: {_format_time(node.last_seen)}"
                )
                for sensor_id in sorted(node.sensors):
                    sensor = node.sensors[sensor_id]
                    description = f' "{sensor.description}"' if sensor.description else ""
                    value = sensor.value if sensor.value is not None else "-"
                    lines.append(
                        f"  Sensor {sensor_id} [{_enum_name(SensorType, sensor.sensor_type)}]"
                        f"{description}: {value} "
                        f"({_enum_name(VariableType, sensor.value_type)}, "
                        f"actualizado: {_format_time(sensor.updated)})"
                    )
            return "\n".join(lines)

    # ------------------------------------------------------------------
    # Persistencia
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "version": SNAPSHOT_VERSION,
                "nodes": {
                    str(node_id): self._nodes[node_id].to_dict()
                    for node_id in sorted(self._nodes)
                },
            }

    def load_snapshot(self, path: str) -> None:
        """
        Carga el estado desde un archivo JSON, reemplazando el actual.

        Un archivo inexistente o vacío deja el registro vacío.

        Raises:
            SnapshotReadError: Si el archivo existe pero no es válido
        """
        file_path = Path(path)
        if not file_path.exists():
            logger.info(f"Archivo de estado {path} no existe, iniciando vacío")
            return

        try:
            text = file_path.read_text(encoding="utf-8")
        except OSError as e:
            raise SnapshotReadError(f"No se pudo leer {path}: {e}") from e

        if not text.strip():
            logger.info(f"Archivo de estado {path} vacío, iniciando vacío")
            return

        try:
            data = json.loads(text)
            nodes = {
                node.node_id: node
                for node in (
                    Node.from_dict(_snapshot_id(node_id, "nodo"), node_data)
                    for node_id, node_data in data.get("nodes", {}).items()
                )
            }
        except (ValueError, TypeError, AttributeError) as e:
            raise SnapshotReadError(f"Archivo de estado inválido {path}: {e}") from e

        with self._lock:
            self._nodes = nodes
        logger.info(f"Estado cargado desde {path}: {len(nodes)} nodos")

    def save_snapshot(self, path: str) -> None:
        """
        Guarda el estado completo en un archivo JSON.

        Escribe a un archivo temporal en el mismo directorio y lo renombra,
        así una caída a mitad de escritura no corrompe el estado anterior.

        Raises:
            SnapshotWriteError: Si hay un error de E/S
        """
        # Serializar bajo lock para no competir con handle_message
        payload = json.dumps(self.to_dict(), indent=2, sort_keys=True)

        directory = os.path.dirname(os.path.abspath(path))
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix=".mysensors-",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise SnapshotWriteError(f"No se pudo escribir {path}: {e}") from e
        logger.info(f"Estado guardado en {path}")
