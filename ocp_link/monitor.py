"""
Connection health monitoring.

Two alternative health policies exist; exactly one is active per session:

* HeartbeatPolicy: trips when no message has decoded for timeout_s.
* FailureCountPolicy: trips after max_failures consecutive empty reads.

The monitor latches a trip so that one stale period produces one
reconnection, until a decoded message or a reconnection resets it.
"""

import logging
import time
from enum import Enum

from . import config


class ConnectionState(Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"


class HeartbeatPolicy:
    name = config.HEALTH_POLICY_HEARTBEAT

    def __init__(self, timeout_s=config.HEARTBEAT_TIMEOUT_S, clock=time.monotonic):
        self.timeout_s = timeout_s
        self.clock = clock
        self.last_message = clock()

    def record_message(self):
        self.last_message = self.clock()

    def record_empty_read(self):
        pass

    def reset(self):
        self.last_message = self.clock()

    def is_exceeded(self):
        return (self.clock() - self.last_message) > self.timeout_s

    def describe(self):
        return f"No messages (data or heartbeat) received in {self.timeout_s:g} seconds"


class FailureCountPolicy:
    name = config.HEALTH_POLICY_FAILURE_COUNT

    def __init__(self, max_failures=config.MAX_CONSECUTIVE_FAILURES):
        self.max_failures = max_failures
        self.consecutive_failures = 0

    def record_message(self):
        self.consecutive_failures = 0

    def record_empty_read(self):
        self.consecutive_failures += 1

    def reset(self):
        self.consecutive_failures = 0

    def is_exceeded(self):
        return self.consecutive_failures >= self.max_failures

    def describe(self):
        return f"{self.consecutive_failures} consecutive reads without data"


def policy_from_settings(settings, clock=time.monotonic):
    if settings.health_policy == config.HEALTH_POLICY_HEARTBEAT:
        return HeartbeatPolicy(settings.heartbeat_timeout_s, clock)
    if settings.health_policy == config.HEALTH_POLICY_FAILURE_COUNT:
        return FailureCountPolicy(settings.max_consecutive_failures)
    raise ValueError(f"Unknown health policy: {settings.health_policy}")


class ConnectionMonitor:
    def __init__(self, policy):
        self.policy = policy
        self.state = ConnectionState.DISCONNECTED
        self._tripped = False

    def record_message(self):
        """A message decoded into settings."""
        self.policy.record_message()
        self._tripped = False

    def record_empty_read(self):
        self.policy.record_empty_read()

    def check_health(self):
        """
        Return a reason string the first time the policy threshold is
        exceeded, None otherwise (including while already tripped).
        """
        if self._tripped or not self.policy.is_exceeded():
            return None
        self._tripped = True
        return self.policy.describe()

    def mark_connected(self):
        self.policy.reset()
        self._tripped = False
        self._set_state(ConnectionState.CONNECTED)

    def mark_reconnecting(self):
        self._set_state(ConnectionState.RECONNECTING)

    def mark_disconnected(self):
        self._set_state(ConnectionState.DISCONNECTED)

    def _set_state(self, state):
        if state is not self.state:
            logging.debug(f"Connection state: {self.state.value} -> {state.value}")
            self.state = state
