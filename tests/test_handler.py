"""Tests para el handler de mensajes."""

import queue
import threading
import time
from unittest.mock import MagicMock

import pytest
import serial

from mysensors_gateway.errors import PayloadTooLong, TransmitFailed
from mysensors_gateway.handler import MessageHandler
from mysensors_gateway.protocol import Message, MessageType, encode


class FakeTransport:
    """Transporte que entrega lecturas predefinidas y registra escrituras."""

    def __init__(self, reads, error=None):
        self.reads = list(reads)
        self.error = error
        self.is_open = True
        self.written = []

    def readline(self):
        if self.reads:
            return self.reads.pop(0)
        if self.error:
            raise self.error
        self.is_open = False
        return b""

    def write(self, data):
        self.written.append(data)


def drain(outbound):
    """Retorna los mensajes de la cola hasta el centinela."""
    return list(iter(outbound.get_nowait, None))


@pytest.fixture
def outbound():
    return queue.Queue()


class TestReadLoop:
    """Tests para el lazo de lectura."""

    def test_decodes_lines_in_order(self, outbound):
        """Test que los mensajes se entregan en orden de llegada."""
        transport = FakeTransport([
            b"5;2;0;0;6;Temp\n",
            b"5;2;1;0;0;23.5\r\n",
        ])
        handler = MessageHandler(transport, outbound)

        handler.start()

        messages = drain(outbound)
        assert [m.message_type for m in messages] == [
            MessageType.PRESENTATION,
            MessageType.SET,
        ]
        assert messages[1].payload == "23.5"
        assert handler.running is False

    def test_malformed_line_skipped(self, outbound):
        """Test que una trama inválida se descarta y el lazo continúa."""
        transport = FakeTransport([
            b"5;2;1;0\n",
            b"5;2;1;0;0;23.5\n",
        ])
        handler = MessageHandler(transport, outbound)

        handler.start()

        messages = drain(outbound)
        assert len(messages) == 1
        assert messages[0].payload == "23.5"
        assert handler.decode_errors == 1

    def test_partial_reads_are_joined(self, outbound):
        """Test que las lecturas parciales por timeout se reensamblan."""
        transport = FakeTransport([b"5;2;1;", b"", b"0;0;23", b".5\n"])
        handler = MessageHandler(transport, outbound)

        handler.start()

        messages = drain(outbound)
        assert messages == [Message(5, 2, MessageType.SET, False, 0, "23.5")]

    def test_blank_and_garbled_bytes(self, outbound):
        """Test de líneas vacías y bytes no UTF-8."""
        transport = FakeTransport([b"\n", b"\xff\xfe;;\n", b"0;255;3;0;14;ok\n"])
        handler = MessageHandler(transport, outbound)

        handler.start()

        messages = drain(outbound)
        assert [m.payload for m in messages] == ["ok"]
        assert handler.decode_errors == 1

    def test_payload_whitespace_preserved(self, outbound):
        """Test que el payload llega intacto, con sus espacios."""
        sent = Message(5, 1, MessageType.SET, False, 47, " hola ")
        transport = FakeTransport([encode(sent).encode("utf-8")])
        handler = MessageHandler(transport, outbound)

        handler.start()

        assert drain(outbound) == [sent]

    def test_read_error_terminates_loop(self, outbound):
        """Test que un error de lectura termina el lazo y envía el centinela."""
        transport = FakeTransport(
            [b"5;2;1;0;0;23.5\n"],
            error=serial.SerialException("dispositivo desconectado"),
        )
        handler = MessageHandler(transport, outbound)

        handler.start()

        assert len(drain(outbound)) == 1
        assert handler.running is False

    def test_stop(self, outbound):
        """Test que stop() termina un lazo sin datos."""
        transport = MagicMock()
        transport.is_open = True
        transport.readline.return_value = b""
        handler = MessageHandler(transport, outbound)

        thread = threading.Thread(target=handler.start)
        thread.start()
        while not handler.running and thread.is_alive():
            time.sleep(0.01)
        handler.stop()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert outbound.get(timeout=1) is None


class TestTransmit:
    """Tests para transmit."""

    def test_transmit_writes_frame(self, outbound):
        transport = FakeTransport([])
        handler = MessageHandler(transport, outbound)

        handler.transmit(Message(255, 255, MessageType.INTERNAL, False, 4, "7"))

        assert transport.written == [b"255;255;3;0;4;7\n"]

    def test_transmit_payload_too_long(self, outbound):
        transport = FakeTransport([])
        handler = MessageHandler(transport, outbound)

        with pytest.raises(PayloadTooLong):
            handler.transmit(Message(5, 1, MessageType.SET, False, 47, "x" * 30))
        assert transport.written == []

    def test_transmit_write_error(self, outbound):
        """Test que un error de escritura se reporta como TransmitFailed."""
        transport = MagicMock()
        transport.write.side_effect = serial.SerialException("puerto cerrado")
        handler = MessageHandler(transport, outbound)

        with pytest.raises(TransmitFailed):
            handler.transmit(Message(5, 1, MessageType.SET, False, 2, "1"))

    def test_concurrent_transmit_does_not_interleave(self, outbound):
        """Test que escrituras concurrentes producen tramas completas."""
        transport = FakeTransport([])
        handler = MessageHandler(transport, outbound)

        def send(node_id):
            for i in range(100):
                handler.transmit(Message(node_id, 1, MessageType.SET, False, 2, str(i)))

        threads = [threading.Thread(target=send, args=(n,)) for n in range(1, 6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(transport.written) == 500
        assert all(frame.endswith(b"\n") and frame.count(b";") == 5 for frame in transport.written)
