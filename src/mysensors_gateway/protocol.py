"""Codificación y decodificación de tramas del protocolo serial MySensors.

Cada trama es una línea ASCII con el formato:

    node-id;child-sensor-id;command;ack;type;payload\\n
"""

from dataclasses import dataclass
from enum import IntEnum

from .errors import MalformedFrame, PayloadTooLong

DELIMITER = ";"
TERMINATOR = "\n"

# Máximo del payload en el formato serial legacy (bytes)
MAX_PAYLOAD = 25

GATEWAY_ID = 0
BROADCAST_ID = 255
NODE_SENSOR_ID = 255
MAX_ID = 255


class MessageType(IntEnum):
    """Campo 'command' de la trama."""
    PRESENTATION = 0
    SET = 1
    REQUEST = 2
    INTERNAL = 3
    STREAM = 4


class SensorType(IntEnum):
    """Subtipos de presentación (S_*)."""
    S_DOOR = 0
    S_MOTION = 1
    S_SMOKE = 2
    S_BINARY = 3
    S_DIMMER = 4
    S_COVER = 5
    S_TEMP = 6
    S_HUM = 7
    S_BARO = 8
    S_WIND = 9
    S_RAIN = 10
    S_UV = 11
    S_WEIGHT = 12
    S_POWER = 13
    S_HEATER = 14
    S_DISTANCE = 15
    S_LIGHT_LEVEL = 16
    S_ARDUINO_NODE = 17
    S_ARDUINO_REPEATER_NODE = 18
    S_LOCK = 19
    S_IR = 20
    S_WATER = 21
    S_AIR_QUALITY = 22
    S_CUSTOM = 23
    S_DUST = 24
    S_SCENE_CONTROLLER = 25
    S_RGB_LIGHT = 26
    S_RGBW_LIGHT = 27
    S_COLOR_SENSOR = 28
    S_HVAC = 29
    S_MULTIMETER = 30
    S_SPRINKLER = 31
    S_WATER_LEAK = 32
    S_SOUND = 33
    S_VIBRATION = 34
    S_MOISTURE = 35
    S_INFO = 36
    S_GAS = 37
    S_GPS = 38
    S_WATER_QUALITY = 39


class VariableType(IntEnum):
    """Subtipos de SET/REQUEST (V_*)."""
    V_TEMP = 0
    V_HUM = 1
    V_STATUS = 2
    V_PERCENTAGE = 3
    V_PRESSURE = 4
    V_FORECAST = 5
    V_RAIN = 6
    V_RAINRATE = 7
    V_WIND = 8
    V_GUST = 9
    V_DIRECTION = 10
    V_UV = 11
    V_WEIGHT = 12
    V_DISTANCE = 13
    V_IMPEDANCE = 14
    V_ARMED = 15
    V_TRIPPED = 16
    V_WATT = 17
    V_KWH = 18
    V_SCENE_ON = 19
    V_SCENE_OFF = 20
    V_HVAC_FLOW_STATE = 21
    V_HVAC_SPEED = 22
    V_LIGHT_LEVEL = 23
    V_VAR1 = 24
    V_VAR2 = 25
    V_VAR3 = 26
    V_VAR4 = 27
    V_VAR5 = 28
    V_UP = 29
    V_DOWN = 30
    V_STOP = 31
    V_IR_SEND = 32
    V_IR_RECEIVE = 33
    V_FLOW = 34
    V_VOLUME = 35
    V_LOCK_STATUS = 36
    V_LEVEL = 37
    V_VOLTAGE = 38
    V_CURRENT = 39
    V_RGB = 40
    V_RGBW = 41
    V_ID = 42
    V_UNIT_PREFIX = 43
    V_HVAC_SETPOINT_COOL = 44
    V_HVAC_SETPOINT_HEAT = 45
    V_HVAC_FLOW_MODE = 46
    V_TEXT = 47
    V_CUSTOM = 48
    V_POSITION = 49
    V_IR_RECORD = 50
    V_PH = 51
    V_ORP = 52
    V_EC = 53
    V_VAR = 54
    V_VA = 55
    V_POWER_FACTOR = 56


class InternalType(IntEnum):
    """Subtipos de mensajes internos (I_*)."""
    I_BATTERY_LEVEL = 0
    I_TIME = 1
    I_VERSION = 2
    I_ID_REQUEST = 3
    I_ID_RESPONSE = 4
    I_INCLUSION_MODE = 5
    I_CONFIG = 6
    I_FIND_PARENT = 7
    I_FIND_PARENT_RESPONSE = 8
    I_LOG_MESSAGE = 9
    I_CHILDREN = 10
    I_SKETCH_NAME = 11
    I_SKETCH_VERSION = 12
    I_REBOOT = 13
    I_GATEWAY_READY = 14
    I_SIGNING_PRESENTATION = 15
    I_NONCE_REQUEST = 16
    I_NONCE_RESPONSE = 17
    I_HEARTBEAT_REQUEST = 18
    I_PRESENTATION = 19
    I_DISCOVER_REQUEST = 20
    I_DISCOVER_RESPONSE = 21
    I_HEARTBEAT_RESPONSE = 22
    I_LOCKED = 23
    I_PING = 24
    I_PONG = 25
    I_REGISTRATION_REQUEST = 26
    I_REGISTRATION_RESPONSE = 27
    I_DEBUG = 28
    I_SIGNAL_REPORT_REQUEST = 29
    I_SIGNAL_REPORT_REVERSE = 30
    I_SIGNAL_REPORT_RESPONSE = 31
    I_PRE_SLEEP_NOTIFICATION = 32
    I_POST_SLEEP_NOTIFICATION = 33


SUB_TYPES = {
    MessageType.PRESENTATION: SensorType,
    MessageType.SET: VariableType,
    MessageType.REQUEST: VariableType,
    MessageType.INTERNAL: InternalType,
}


@dataclass(frozen=True)
class Message:
    """Mensaje MySensors decodificado (inmutable)."""
    node_id: int
    sensor_id: int
    message_type: MessageType
    ack: bool
    sub_type: int
    payload: str = ""

    def __post_init__(self):
        for name in ("node_id", "sensor_id", "sub_type"):
            value = int(getattr(self, name))
            if not 0 <= value <= MAX_ID:
                raise ValueError(f"{name} fuera de rango: {value}")
            object.__setattr__(self, name, value)
        # Acepta enteros crudos y los normaliza al enum
        object.__setattr__(self, "message_type", MessageType(self.message_type))
        object.__setattr__(self, "ack", bool(self.ack))

    @property
    def sub_type_name(self) -> str:
        """Nombre simbólico del subtipo (p. ej. 'V_TEMP'), o el número si no se conoce."""
        enum_cls = SUB_TYPES.get(self.message_type)
        if enum_cls is None:
            return str(self.sub_type)
        try:
            return enum_cls(self.sub_type).name
        except ValueError:
            return str(self.sub_type)

    def reply(self, message_type: MessageType, sub_type: int, payload: str) -> "Message":
        """Construye un mensaje dirigido al mismo nodo y sensor."""
        return Message(
            node_id=self.node_id,
            sensor_id=self.sensor_id,
            message_type=message_type,
            ack=False,
            sub_type=sub_type,
            payload=payload,
        )


def _parse_int(value: str, name: str, upper: int) -> int:
    try:
        number = int(value)
    except ValueError:
        raise MalformedFrame(f"Campo {name} no es un entero: {value!r}") from None
    if not 0 <= number <= upper or not value.strip().isdigit():
        raise MalformedFrame(f"Campo {name} fuera de rango: {value!r}")
    return number


def parse_fields(fields: list[str]) -> Message:
    """
    Construye un Message a partir de los seis campos del protocolo.

    Raises:
        MalformedFrame: Si la cantidad de campos o algún entero es inválido
    """
    if len(fields) != 6:
        raise MalformedFrame(f"Se esperaban 6 campos, se recibieron {len(fields)}")

    node_id, sensor_id, command, ack, sub_type, payload = fields
    return Message(
        node_id=_parse_int(node_id, "node-id", MAX_ID),
        sensor_id=_parse_int(sensor_id, "child-sensor-id", MAX_ID),
        message_type=MessageType(_parse_int(command, "command", max(MessageType))),
        ack=bool(_parse_int(ack, "ack", 1)),
        sub_type=_parse_int(sub_type, "type", MAX_ID),
        payload=payload,
    )


def decode(line: str) -> Message:
    """
    Decodifica una línea del puerto serial.

    El payload es el resto de la línea tras el quinto delimitador, por lo
    que puede contener ';'.

    Raises:
        MalformedFrame: Si la trama no tiene el formato esperado
    """
    line = line.rstrip("\r\n")
    return parse_fields(line.split(DELIMITER, 5))


def encode(message: Message) -> str:
    """
    Serializa un Message como trama serial terminada en '\\n'.

    Raises:
        PayloadTooLong: Si el payload supera MAX_PAYLOAD bytes
    """
    size = len(message.payload.encode("utf-8"))
    if size > MAX_PAYLOAD:
        raise PayloadTooLong(
            f"Payload de {size} bytes excede el máximo de {MAX_PAYLOAD}"
        )
    if "\n" in message.payload or "\r" in message.payload:
        raise MalformedFrame("El payload no puede contener saltos de línea")

    fields = [
        message.node_id,
        message.sensor_id,
        int(message.message_type),
        int(message.ack),
        message.sub_type,
        message.payload,
    ]
    return DELIMITER.join(str(f) for f in fields) + TERMINATOR
