"""
Serial port discovery.

Each supported platform has its own enumeration primitive; the catalog
filters out audio/Bluetooth virtual ports and returns a sorted, de-duplicated
list so discovery order is the same on every run.
"""

import glob
import logging
import sys

import serial.tools.list_ports

from . import config


def _windows_devices():
    return [port_info.device for port_info in serial.tools.list_ports.comports()]


def _macos_devices():
    # Prefer cu.* (callout) devices over tty.*
    return glob.glob("/dev/cu.*") + glob.glob("/dev/tty.*")


def _linux_devices():
    return glob.glob("/dev/ttyUSB*") + glob.glob("/dev/ttyACM*")


def _no_devices():
    return []


PLATFORM_ENUMERATORS = {
    "win32": _windows_devices,
    "darwin": _macos_devices,
    "linux": _linux_devices,
}


def detect_platform(platform=None):
    """Normalise sys.platform to a PLATFORM_ENUMERATORS key (or None)."""
    platform = platform or sys.platform
    if platform.startswith("win"):
        return "win32"
    if platform == "darwin":
        return "darwin"
    if platform.startswith("linux"):
        return "linux"
    return None


def is_denied(name, deny_list=config.PORT_DENY_LIST):
    lowered = name.lower()
    return any(token in lowered for token in deny_list)


class PortCatalog:
    def __init__(self, enumerate_devices, deny_list=config.PORT_DENY_LIST):
        """
        enumerate_devices: callable returning raw device paths
        deny_list: lowercase substrings excluding a device
        """
        self.enumerate_devices = enumerate_devices
        self.deny_list = tuple(deny_list)

    @classmethod
    def for_platform(cls, platform=None, deny_list=config.PORT_DENY_LIST):
        key = detect_platform(platform)
        if key is None:
            logging.warning(f"Serial discovery not supported on {platform or sys.platform}.")
        return cls(PLATFORM_ENUMERATORS.get(key, _no_devices), deny_list)

    def list_candidate_ports(self):
        """
        Return candidate port names, sorted and de-duplicated.
        Never raises; an empty list means no device was found.
        """
        try:
            devices = self.enumerate_devices()
        except OSError as e:
            logging.error(f"Port enumeration failed: {e}")
            return []

        candidates = {d for d in devices if d and not is_denied(d, self.deny_list)}
        return sorted(candidates)
