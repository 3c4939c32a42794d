import logging

from . import config, utils
from .frames import FrameReader
from .link import Link, LinkError

DEFAULT_SETTINGS = config.LinkSettings()


def _identity_from_line(line):
    """Split a handshake line into {id, version}."""
    fields = [f.strip() for f in line.split(",")]
    return {
        "id": fields[0],
        "version": fields[1] if len(fields) > 1 else "",
    }


def try_connect(port, settings=DEFAULT_SETTINGS, stop_event=None):
    """
    Open port and synchronise with the panel.
    Handshake policy:
    1. Open port at settings.baud_rate, 8-N-1.
    2. Wait post_open_delay_s (the Teensy reboots when the port opens).
    3. Read up to max_handshake_attempts lines looking for handshake_id.
    4. On match widen the read timeout and return the Link; otherwise
       close the port and return None.
    """
    link = Link(port, settings.baud_rate, timeout=settings.post_open_delay_s)
    try:
        link.open()

        if not utils.wait_or_cancel(settings.post_open_delay_s, stop_event):
            link.close()
            return None

        logging.info(f"Looking for handshake on {port}...")
        reader = FrameReader(link, settings.device_id_prefix)
        link.read_timeout = settings.handshake_timeout_s

        for attempt in range(settings.max_handshake_attempts):
            if stop_event is not None and stop_event.is_set():
                break
            line = reader.read_line(settings.handshake_timeout_s)
            if not line or not line.strip():
                continue
            line = line.strip()
            if line.startswith(settings.handshake_id):
                link.identity = _identity_from_line(line)
                link.read_timeout = settings.read_timeout_s
                link.backlog = reader.detach_buffer()
                logging.info(f"Received: {line}")
                logging.info(f"Connected to panel on {port} at {settings.baud_rate} baud.")
                return link
            logging.debug(f"Handshake attempt {attempt + 1}: ignored '{line}'")

        logging.warning(f"No handshake received on {port}.")
    except LinkError as e:
        logging.warning(f"Error on {port}: {e}")

    link.close()
    return None


def discover_and_connect(catalog, settings=DEFAULT_SETTINGS, stop_event=None):
    """
    Try each candidate port in order.
    Returns the first connected Link, or None if every candidate failed.
    """
    ports = catalog.list_candidate_ports()
    if not ports:
        logging.error("No serial ports found.")
        return None

    logging.info(f"Found {len(ports)} serial port(s): {', '.join(ports)}")

    for port in ports:
        if stop_event is not None and stop_event.is_set():
            return None
        logging.info(f"Trying {port}...")
        link = try_connect(port, settings, stop_event)
        if link is not None:
            return link

    logging.error("No panel found on any port.")
    return None
