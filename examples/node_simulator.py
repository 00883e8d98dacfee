#!/usr/bin/env python3
"""
Simulador de gateway MySensors para pruebas.
Este script crea un puerto serial virtual que emite tramas como lo haría
un gateway serial con un nodo de temperatura conectado.
"""

import os
import pty
import random
import sys
import time
from argparse import ArgumentParser, Namespace

from mysensors_gateway.protocol import (
    InternalType,
    Message,
    MessageType,
    SensorType,
    VariableType,
    decode,
    encode,
)


def presentation(node_id: int) -> list[Message]:
    """Secuencia de arranque de un nodo: presentación, sketch y sensor."""
    return [
        Message(0, 255, MessageType.INTERNAL, False, InternalType.I_GATEWAY_READY,
                "Gateway startup complete."),
        Message(node_id, 255, MessageType.PRESENTATION, False,
                SensorType.S_ARDUINO_NODE, "2.3.2"),
        Message(node_id, 255, MessageType.INTERNAL, False,
                InternalType.I_SKETCH_NAME, "Temperature Sensor"),
        Message(node_id, 255, MessageType.INTERNAL, False,
                InternalType.I_SKETCH_VERSION, "1.0"),
        Message(node_id, 1, MessageType.PRESENTATION, False, SensorType.S_TEMP, "Temp"),
    ]


def simulate_node(master_fd: int, node_id: int, interval: float):
    """
    Simula un nodo que reporta temperatura y batería.

    Args:
        master_fd: File descriptor del lado maestro del PTY
        node_id: ID del nodo simulado
        interval: Segundos entre lecturas
    """
    print("Simulador de nodo iniciado")

    def send(message: Message):
        frame = encode(message)
        os.write(master_fd, frame.encode("utf-8"))
        print(f"Enviado: {frame.strip()}")

    for message in presentation(node_id):
        send(message)

    buffer = b""
    os.set_blocking(master_fd, False)
    try:
        while True:
            temperature = random.uniform(18.0, 26.0)
            send(Message(node_id, 1, MessageType.SET, False,
                         VariableType.V_TEMP, f"{temperature:.1f}"))
            send(Message(node_id, 255, MessageType.INTERNAL, False,
                         InternalType.I_BATTERY_LEVEL, str(random.randint(60, 100))))

            time.sleep(interval)

            # Mostrar las respuestas que el gateway escribió en el puerto
            try:
                buffer += os.read(master_fd, 1024)
            except BlockingIOError:
                pass
            *lines, buffer = buffer.split(b"\n")
            for line in lines:
                print(f"Recibido: {decode(line.decode('utf-8'))}")

    except KeyboardInterrupt:
        print("\nSimulador detenido")


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(description="Simulador de gateway MySensors para pruebas.")
    parser.add_argument(
        "--node-id",
        type=int,
        default=5,
        help="ID del nodo simulado. Por defecto 5.",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=5.0,
        help="Segundos entre lecturas. Por defecto 5.",
    )
    return parser


def parse_args(argv: list[str]) -> Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def main(argv: list[str] | None = None):
    """Función principal."""
    args = parse_args(argv if argv is not None else sys.argv[1:])

    print("=== Simulador de Gateway MySensors ===\n")

    # Crear un par de pseudo-terminales (PTY)
    master_fd, slave_fd = pty.openpty()

    # Obtener el nombre del dispositivo esclavo
    slave_name = os.ttyname(slave_fd)

    print(f"Puerto serial virtual creado: {slave_name}")
    print("\nUsa este puerto en la configuración:")
    print(f"  export SERIAL_PORT={slave_name}\n")
    print("Presiona Ctrl+C para detener\n")

    simulate_node(master_fd, args.node_id, args.interval)


if __name__ == "__main__":
    main()
