"""
Message framing for the panel's serial stream.

The firmware sends either newline-terminated text (CSV, JSON, key=value)
or fixed 38-byte binary frames. A binary frame carries a NUL inside its
16-byte identifier field, right after an identifier starting with the
device prefix. Text never contains NUL, which is how the two are told
apart in a shared byte stream; a NUL behind anything else is line noise.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum

from . import config


class MessageKind(Enum):
    TEXT = "text"
    BINARY = "binary"


@dataclass(frozen=True)
class Message:
    kind: MessageKind
    payload: object  # str for TEXT, bytes for BINARY

    @classmethod
    def text(cls, line):
        return cls(MessageKind.TEXT, line)

    @classmethod
    def binary(cls, frame):
        return cls(MessageKind.BINARY, bytes(frame))

    @property
    def is_binary(self):
        return self.kind is MessageKind.BINARY


class FrameReader:
    def __init__(self, link, device_id_prefix=config.DEVICE_ID_PREFIX, max_buffer=config.MAX_BUFFER_BYTES):
        self.link = link
        self.device_id_prefix = device_id_prefix.encode('ascii')
        self.max_buffer = max_buffer
        # Bytes a previous reader left unconsumed on this link (handshake)
        self._buffer = bytearray(link.backlog)
        link.backlog = b''

    def read_message(self, timeout=None):
        """
        Read one binary frame or text line within timeout.
        Returns None when nothing complete arrived (not an error).
        Raises LinkError if the link fails.
        """
        if timeout is None:
            timeout = self.link.read_timeout
        deadline = time.monotonic() + timeout

        while True:
            message = self._extract()
            if message is not None:
                return message

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None

            chunk = self.link.read_available(remaining)
            if chunk:
                self._buffer.extend(chunk)
                self._check_overflow()

    def read_line(self, timeout=None):
        """Read the next text line, skipping binary frames. None on timeout."""
        if timeout is None:
            timeout = self.link.read_timeout
        deadline = time.monotonic() + timeout

        while True:
            remaining = deadline - time.monotonic()
            message = self.read_message(max(remaining, 0))
            if message is None:
                return None
            if not message.is_binary:
                return message.payload
            if remaining <= 0:
                return None

    def reset(self):
        self._buffer.clear()

    def detach_buffer(self):
        """Return and clear unconsumed bytes, for a reader taking over the link."""
        pending = bytes(self._buffer)
        self._buffer.clear()
        return pending

    def _is_frame_identifier(self, ident):
        return ident.startswith(self.device_id_prefix) and all(0x20 <= b < 0x7f for b in ident)

    def _extract(self):
        buf = self._buffer
        while buf:
            newline = buf.find(b'\n')
            nul = buf.find(b'\x00', 0, config.BINARY_ID_FIELD_SIZE)

            if nul == -1 or (newline != -1 and newline < nul):
                break

            if not self._is_frame_identifier(bytes(buf[:nul])):
                # Line noise: drop one byte and resync
                del buf[:1]
                continue

            if len(buf) < config.BINARY_FRAME_SIZE:
                return None
            frame = bytes(buf[:config.BINARY_FRAME_SIZE])
            del buf[:config.BINARY_FRAME_SIZE]
            return Message.binary(frame)

        newline = buf.find(b'\n')
        if newline == -1:
            return None

        raw = bytes(buf[:newline])
        del buf[:newline + 1]
        line = raw.replace(b'\r', b'').decode('utf-8', errors='replace')
        return Message.text(line)

    def _check_overflow(self):
        if len(self._buffer) <= self.max_buffer:
            return
        if self._buffer.find(b'\n') == -1:
            logging.warning(f"Discarding {len(self._buffer)} bytes without line terminator.")
            self._buffer.clear()
