import argparse
import logging
import signal
import sys
import threading

from ocp_link import config
from ocp_link.handshake import discover_and_connect
from ocp_link.ports import PortCatalog
from ocp_link.session import SessionContext, run_session
from ocp_link.sink import LoggingSink

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Teensy operator control panel serial bridge")
    parser.add_argument("--baud", type=int, default=config.BAUD_RATE,
                        help=f"serial baud rate (default {config.BAUD_RATE})")
    parser.add_argument("--handshake-id", default=config.HANDSHAKE_ID,
                        help=f"expected handshake prefix (default {config.HANDSHAKE_ID})")
    parser.add_argument("--policy", default=config.HEALTH_POLICY,
                        choices=[config.HEALTH_POLICY_HEARTBEAT, config.HEALTH_POLICY_FAILURE_COUNT],
                        help="connection health policy")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def build_settings(args):
    return config.LinkSettings(
        baud_rate=args.baud,
        handshake_id=args.handshake_id,
        health_policy=args.policy,
    )


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)

    settings = build_settings(args)
    catalog = PortCatalog.for_platform()

    stop_event = threading.Event()

    def handle_sigint(signum, frame):
        logging.info("Shutting down gracefully...")
        stop_event.set()

    previous_handler = signal.signal(signal.SIGINT, handle_sigint)
    try:
        return _run(settings, catalog, stop_event)
    finally:
        signal.signal(signal.SIGINT, previous_handler)


def _run(settings, catalog, stop_event):
    logging.info("Discovering and connecting to panel...")
    link = discover_and_connect(catalog, settings, stop_event)
    if link is None:
        if stop_event.is_set():
            logging.info("Interrupted before a panel was found.")
            return 0
        logging.error("Failed to discover and connect to panel.")
        logging.error("Troubleshooting: check the USB cable, check the OS lists a serial port, "
                      f"and make sure the firmware sends '{settings.handshake_id}' at startup.")
        return 1

    context = SessionContext(settings, catalog, LoggingSink())
    context.attach(link)

    try:
        stats = run_session(context, stop_event)
    finally:
        context.disconnect()

    logging.info(f"Disconnected from panel. {stats.summary()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
