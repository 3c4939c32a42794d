import struct
from collections import deque

from ocp_link import config


def build_frame(ident=b"TEENSY_OCP_001", version=b"1.0.0", deltas=(0, 0, 0), status=0, value=0):
    return struct.pack(config.BINARY_FRAME_FORMAT, ident, version, *deltas, status, value)


class FakeSerial:
    """
    Stands in for serial.Serial. Each queued chunk is delivered whole
    through in_waiting/read; an Exception instance is raised instead.
    """

    def __init__(self, chunks=()):
        self.chunks = deque(chunks)
        self.is_open = True
        self.timeout = None
        self.written = []

    @property
    def in_waiting(self):
        if not self.chunks:
            return 0
        head = self.chunks[0]
        if isinstance(head, Exception):
            self.chunks.popleft()
            raise head
        return len(head)

    def read(self, size=1):
        chunk = self.chunks.popleft()
        if len(chunk) > size:
            self.chunks.appendleft(chunk[size:])
            chunk = chunk[:size]
        return chunk

    def write(self, data):
        self.written.append(data)
        return len(data)

    def flush(self):
        pass

    def close(self):
        self.is_open = False


class StubLink:
    """Minimal Link: hands out queued chunks, b'' once exhausted."""

    def __init__(self, chunks=(), port="/dev/ttyACM0", read_timeout=0.01):
        self.chunks = deque(chunks)
        self.port = port
        self.read_timeout = read_timeout
        self.identity = None
        self.backlog = b''
        self.is_open = True
        self.close_count = 0

    def read_available(self, timeout=None):
        if not self.chunks:
            return b''
        chunk = self.chunks.popleft()
        if isinstance(chunk, Exception):
            raise chunk
        return chunk

    def close(self):
        self.is_open = False
        self.close_count += 1
