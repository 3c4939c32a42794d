"""
Settings hand-off to the motion-control side.

A sink applies one key at a time and reports an ApplyResult per key;
apply_settings collects them into an ApplyReport so one failing key never
blocks the rest of the map.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from . import config, utils


@dataclass(frozen=True)
class ApplyResult:
    key: str
    ok: bool
    error: Optional[str] = None

    @classmethod
    def success(cls, key):
        return cls(key, True)

    @classmethod
    def failure(cls, key, error):
        return cls(key, False, error)


@dataclass
class ApplyReport:
    results: List[ApplyResult] = field(default_factory=list)

    @property
    def applied(self):
        return [r.key for r in self.results if r.ok]

    @property
    def failed(self):
        return [r for r in self.results if not r.ok]

    @property
    def ok(self):
        return not self.failed

    def log_failures(self):
        for result in self.failed:
            logging.warning(f"Failed to apply {result.key}: {result.error}")


class SettingsSink:
    """Base sink. Subclasses implement apply_setting."""

    def begin(self, settings):
        """Called once per map before its keys are applied."""

    def apply_setting(self, key, value):
        raise NotImplementedError


def apply_settings(sink, settings):
    report = ApplyReport()
    try:
        sink.begin(settings)
    except Exception as e:
        logging.error(f"Sink rejected settings map: {e}")
        report.results.extend(ApplyResult.failure(k, str(e)) for k in settings)
        return report

    for key, value in settings.items():
        try:
            result = sink.apply_setting(key, value)
        except Exception as e:
            result = ApplyResult.failure(key, str(e))
        if result is None:
            result = ApplyResult.success(key)
        report.results.append(result)
    return report


class LoggingSink(SettingsSink):
    """Logs decoded settings, at most once per throttle interval."""

    def __init__(self, throttle_s=config.DISPLAY_THROTTLE_S, clock=time.monotonic):
        self.throttle_s = throttle_s
        self.clock = clock
        self._last_display = None
        self._display_current = False

    def begin(self, settings):
        now = self.clock()
        self._display_current = (
            self._last_display is None or (now - self._last_display) >= self.throttle_s
        )
        if self._display_current:
            self._last_display = now
            logging.info("Settings:")

    def apply_setting(self, key, value):
        if self._display_current:
            logging.info(f"  {key}: {utils.format_value(value)}")
        return ApplyResult.success(key)


class HandlerSink(SettingsSink):
    """
    Dispatches each key to a handler(value).
    A handler returning False marks the key failed; unmapped keys fail
    with 'no mapping defined'.
    """

    def __init__(self, handlers):
        self.handlers = dict(handlers)

    def apply_setting(self, key, value):
        handler = self.handlers.get(key)
        if handler is None:
            return ApplyResult.failure(key, "no mapping defined")
        if handler(value) is False:
            return ApplyResult.failure(key, "handler reported failure")
        return ApplyResult.success(key)
