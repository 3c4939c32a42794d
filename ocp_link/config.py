# OCP Link Configuration Constants

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

# Serial Settings
BAUD_RATE = 115200
READ_TIMEOUT_S = 0.1        # Steady-state per-message read budget
POLL_INTERVAL_S = 0.005     # Sleep between in_waiting polls

# Handshake
HANDSHAKE_ID = "TEENSY_OCP_001"
DEVICE_ID_PREFIX = "TEENSY_OCP"  # Firmware family, used to recognise CSV records
HANDSHAKE_TIMEOUT_S = 0.5   # Per-line timeout during handshake
MAX_HANDSHAKE_ATTEMPTS = 30 # Max lines to read for sync
POST_OPEN_DELAY_S = 2.0     # Teensy reboots when the port opens

# Connection Health
HEALTH_POLICY_HEARTBEAT = "heartbeat"
HEALTH_POLICY_FAILURE_COUNT = "failure_count"
HEALTH_POLICY = HEALTH_POLICY_HEARTBEAT
HEARTBEAT_TIMEOUT_S = 15.0
MAX_CONSECUTIVE_FAILURES = 50  # ~5 seconds at 100ms timeout

# Reconnection
RECONNECT_DELAY_S = 2.0        # Wait before attempting reconnection
RECONNECT_RETRY_DELAY_S = 5.0  # Wait between failed reconnection attempts
IDLE_DELAY_S = 0.005           # Pause after an empty read
ERROR_DELAY_S = 0.01           # Pause after an unexpected loop error

# Framing
MAX_BUFFER_BYTES = 1024
BINARY_FRAME_SIZE = 38
BINARY_ID_FIELD_SIZE = 16
BINARY_VERSION_FIELD_SIZE = 8
BINARY_FRAME_FORMAT = "<16s8s3iBB"

# Decoding
MAX_FEEDRATE_VALUE = 255.0
STEP_SIZES = {
    0: 0.001,
    1: 0.01,
    2: 0.1,
    3: 1.0,
    4: 10.0,
}
DEFAULT_STEP_SIZE = 0.01

# Switch bits (firmware contract)
SWITCH_BITS = (
    ("switch_enabled", 0x01),
    ("switch_feedhold", 0x02),
    ("switch_cycle_start", 0x04),
    ("switch_cycle_stop", 0x08),
    ("switch_tool_check", 0x10),
    ("switch_inc_cont", 0x20),
    ("switch_slow_fast", 0x40),
)

# Port discovery: audio / Bluetooth virtual serial ports
PORT_DENY_LIST = (
    "bluetooth",
    "debug",
    "wlan",
    "jbl",
    "airpods",
    "beats",
    "bose",
    "sony",
    "h97",   # Common headphone model
    "tune",  # JBL Tune series
)

# Display
DISPLAY_THROTTLE_S = 0.2  # Minimum time between logged settings maps
STARTUP_WAIT_S = 5.0      # Interval between "waiting for data" notices


@dataclass(frozen=True)
class LinkSettings:
    """Immutable runtime configuration, built once at startup."""
    baud_rate: int = BAUD_RATE
    handshake_id: str = HANDSHAKE_ID
    device_id_prefix: str = DEVICE_ID_PREFIX
    read_timeout_s: float = READ_TIMEOUT_S
    handshake_timeout_s: float = HANDSHAKE_TIMEOUT_S
    max_handshake_attempts: int = MAX_HANDSHAKE_ATTEMPTS
    post_open_delay_s: float = POST_OPEN_DELAY_S
    health_policy: str = HEALTH_POLICY
    heartbeat_timeout_s: float = HEARTBEAT_TIMEOUT_S
    max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES
    reconnect_delay_s: float = RECONNECT_DELAY_S
    reconnect_retry_delay_s: float = RECONNECT_RETRY_DELAY_S
    step_sizes: Mapping = field(default_factory=lambda: MappingProxyType(dict(STEP_SIZES)))
    default_step_size: float = DEFAULT_STEP_SIZE

    def __post_init__(self):
        # Copy so a caller's dict cannot change the table after construction
        object.__setattr__(self, "step_sizes", MappingProxyType(dict(self.step_sizes)))
