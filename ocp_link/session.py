import logging
import time
from dataclasses import dataclass

from . import config, utils
from .decoder import SettingsDecoder
from .frames import FrameReader
from .handshake import discover_and_connect
from .link import LinkError
from .monitor import ConnectionMonitor, ConnectionState, policy_from_settings
from .sink import apply_settings


@dataclass
class SessionStats:
    empty_reads: int = 0
    decode_failures: int = 0
    decoded: int = 0
    reconnections: int = 0

    def summary(self):
        return (f"{self.decoded} decoded, {self.decode_failures} dropped, "
                f"{self.empty_reads} empty reads, {self.reconnections} reconnections")


class SessionContext:
    """
    Everything the read loop owns: the current Link and its reader,
    decoder, health monitor and settings sink.
    Created by the top-level driver and passed explicitly.
    """

    def __init__(self, settings, catalog, sink, decoder=None, monitor=None):
        self.settings = settings
        self.catalog = catalog
        self.sink = sink
        self.decoder = decoder or SettingsDecoder.from_settings(settings)
        self.monitor = monitor or ConnectionMonitor(policy_from_settings(settings))
        self.stats = SessionStats()
        self.link = None
        self.reader = None

    @property
    def is_connected(self):
        return self.link is not None and self.link.is_open

    def attach(self, link):
        self.link = link
        self.reader = FrameReader(link, self.settings.device_id_prefix)
        self.monitor.mark_connected()

    def disconnect(self):
        if self.link is not None:
            self.link.close()
        self.link = None
        self.reader = None


class ReconnectOrchestrator:
    def __init__(self, context, stop_event):
        self.context = context
        self.stop_event = stop_event

    def reconnect(self, reason):
        """
        Close the link, wait, rediscover.
        Returns True once connected again. On failure waits the retry
        delay and leaves the monitor in RECONNECTING.
        """
        ctx = self.context
        settings = ctx.settings

        logging.warning(f"{reason}. Attempting to reconnect...")
        ctx.monitor.mark_reconnecting()
        ctx.disconnect()

        if not utils.wait_or_cancel(settings.reconnect_delay_s, self.stop_event):
            return False

        link = discover_and_connect(ctx.catalog, settings, self.stop_event)
        if link is not None:
            ctx.attach(link)
            ctx.stats.reconnections += 1
            logging.info("Reconnected to panel.")
            return True

        if self.stop_event.is_set():
            return False
        logging.warning(f"Reconnection failed. Retrying in {settings.reconnect_retry_delay_s:g} seconds...")
        utils.wait_or_cancel(settings.reconnect_retry_delay_s, self.stop_event)
        return False


def run_session(context, stop_event):
    """
    Read, decode and apply panel messages until stop_event is set.
    Link loss and stale links are handled by reconnecting indefinitely.
    """
    orchestrator = ReconnectOrchestrator(context, stop_event)
    monitor = context.monitor
    stats = context.stats
    last_notice = time.monotonic()

    logging.info("Listening for panel data...")

    while not stop_event.is_set():
        try:
            if not context.is_connected:
                if monitor.state is ConnectionState.RECONNECTING:
                    orchestrator.reconnect("Panel still not connected")
                else:
                    orchestrator.reconnect("Panel disconnected")
                continue

            reason = monitor.check_health()
            if reason:
                orchestrator.reconnect(reason)
                continue

            try:
                message = context.reader.read_message()
            except LinkError as e:
                logging.error(f"Link error: {e}")
                context.disconnect()
                continue

            if message is None:
                stats.empty_reads += 1
                monitor.record_empty_read()
                if stats.decoded == 0 and time.monotonic() - last_notice > config.STARTUP_WAIT_S:
                    logging.info(f"Waiting for panel data (attempt {stats.empty_reads})...")
                    last_notice = time.monotonic()
                utils.wait_or_cancel(config.IDLE_DELAY_S, stop_event)
                continue

            settings = context.decoder.decode(message)
            if not settings:
                stats.decode_failures += 1
                continue

            stats.decoded += 1
            monitor.record_message()

            report = apply_settings(context.sink, settings)
            report.log_failures()

        except Exception as e:
            logging.exception(f"Error processing data: {e}")
            utils.wait_or_cancel(config.ERROR_DELAY_S, stop_event)

    return stats
