import logging
import time

import serial

from . import config


class LinkError(ConnectionError):
    """Serial I/O failed or the port is no longer open."""


class Link:
    """
    An open serial channel to the panel (8-N-1).
    Reads are polled against in_waiting so every read is bounded by
    its own timeout regardless of the port's configured timeout.
    """

    def __init__(self, port, baud=config.BAUD_RATE, timeout=config.READ_TIMEOUT_S):
        self.port = port
        self.baud = baud
        self.ser = None
        self.identity = None
        self.backlog = b''
        self._read_timeout = timeout

    def open(self):
        logging.info(f"Opening {self.port} at {self.baud}...")
        try:
            self.ser = serial.Serial(
                port=self.port,
                baudrate=self.baud,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self._read_timeout,
            )
        except (serial.SerialException, OSError) as e:
            self.ser = None
            raise LinkError(f"Failed to open {self.port}: {e}") from e
        return self

    @property
    def is_open(self):
        return self.ser is not None and bool(self.ser.is_open)

    @property
    def read_timeout(self):
        return self._read_timeout

    @read_timeout.setter
    def read_timeout(self, value):
        self._read_timeout = value
        if self.ser is not None:
            self.ser.timeout = value

    def read_available(self, timeout=None):
        """
        Return whatever bytes arrive within timeout (b'' if none).
        Raises LinkError if the port is closed or the read fails.
        """
        if not self.is_open:
            raise LinkError(f"{self.port} is not open")
        if timeout is None:
            timeout = self._read_timeout

        deadline = time.monotonic() + timeout
        try:
            while True:
                waiting = self.ser.in_waiting
                if waiting:
                    return self.ser.read(waiting)
                if time.monotonic() >= deadline:
                    return b''
                time.sleep(config.POLL_INTERVAL_S)
        except (serial.SerialException, OSError) as e:
            raise LinkError(f"Read failed on {self.port}: {e}") from e

    def write(self, data):
        if not self.is_open:
            raise LinkError(f"{self.port} is not open")
        try:
            self.ser.write(data)
            self.ser.flush()
        except (serial.SerialException, OSError) as e:
            raise LinkError(f"Write failed on {self.port}: {e}") from e

    def close(self):
        if self.ser is None:
            return
        try:
            if self.ser.is_open:
                self.ser.close()
        except (serial.SerialException, OSError) as e:
            logging.error(f"Error closing {self.port}: {e}")
        finally:
            self.ser = None

    def __repr__(self):
        state = "open" if self.is_open else "closed"
        return f"<Link {self.port} {self.baud} {state}>"
