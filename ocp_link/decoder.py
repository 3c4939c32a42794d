"""
Settings decoder.

Turns one panel message into a flat settings map.

Supported formats:
    Binary frame (38 bytes): id[16] version[8] dX dY dZ (int32 LE) status value
    OCP CSV (new): TEENSY_OCP_001,1.0.0,0,0,0,100,200,300,4,1,25
                   (id,version,dX,dY,dZ,posX,posY,posZ,switches,stepIndex,feedrate)
    OCP CSV (old): TEENSY_OCP_001,1.0.0,0,0,0,4,1,25
                   (id,version,dX,dY,dZ,switches,stepIndex,feedrate)
    OCP JSON:      {"ocp":{"device":{...},"switches":{...},"feedrate":{...},"encoders":{...}}}
    Generic JSON:  {"command": "spindle", "value": 1200}
    Key/value:     SPINDLE=1200;COOLANT=true
    Text:          SPINDLE 1200
"""

import json
import logging
import struct
from typing import Dict, Optional, Union

from . import config, utils
from .frames import Message

SettingValue = Union[bool, int, float, str]
SettingsMap = Dict[str, SettingValue]

NEW_SCHEMA_FIELDS = 11
OLD_SCHEMA_FIELDS = 8

# JSON name -> settings key
OCP_DEVICE_FIELDS = (("id", "device_id"), ("version", "device_version"))
OCP_SWITCH_FIELDS = (
    ("enabled", "switch_enabled"),
    ("feedhold", "switch_feedhold"),
    ("cycleStart", "switch_cycle_start"),
    ("cycleStop", "switch_cycle_stop"),
    ("toolCheck", "switch_tool_check"),
    ("incCont", "switch_inc_cont"),
    ("slowFast", "switch_slow_fast"),
)
OCP_FEEDRATE_FIELDS = (
    ("value", "feedrate_value"),
    ("minValue", "feedrate_min"),
    ("maxValue", "feedrate_max"),
)
OCP_ENCODER_FIELDS = (
    ("deltaX", "delta_x"),
    ("deltaY", "delta_y"),
    ("deltaZ", "delta_z"),
    ("posX", "pos_x"),
    ("posY", "pos_y"),
    ("posZ", "pos_z"),
)


class StepSizeTable:
    """Step index -> jog multiplier. Lookup never fails."""

    def __init__(self, sizes=None, default=config.DEFAULT_STEP_SIZE):
        self.sizes = dict(config.STEP_SIZES if sizes is None else sizes)
        self.default = default

    def lookup(self, index):
        return self.sizes.get(index, self.default)

    def __getitem__(self, index):
        return self.lookup(index)

    def __contains__(self, index):
        return index in self.sizes


def feedrate_percent(raw):
    return raw / config.MAX_FEEDRATE_VALUE * 100.0


def unpack_switches(switches, settings):
    settings["switches_raw"] = switches
    for key, mask in config.SWITCH_BITS:
        settings[key] = (switches & mask) != 0


def _c_string(field):
    return field.split(b'\x00', 1)[0].decode('ascii', errors='replace')


def _json_number(value, name):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{name}' is not a number: {value!r}")
    return float(value)


def _json_bool(value, name):
    if not isinstance(value, bool):
        raise ValueError(f"'{name}' is not a boolean: {value!r}")
    return value


def _json_string(value, name):
    if not isinstance(value, str):
        raise ValueError(f"'{name}' is not a string: {value!r}")
    return value


def _json_int(value, name):
    if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) != value:
        raise ValueError(f"'{name}' is not an integer: {value!r}")
    return int(value)


def _section(ocp, name):
    section = ocp.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' is not an object")
    return section


class SettingsDecoder:
    def __init__(self, step_sizes=None, device_id_prefix=config.DEVICE_ID_PREFIX):
        self.step_sizes = step_sizes if step_sizes is not None else StepSizeTable()
        self.device_id_prefix = device_id_prefix

    @classmethod
    def from_settings(cls, link_settings):
        table = StepSizeTable(link_settings.step_sizes, link_settings.default_step_size)
        return cls(table, link_settings.device_id_prefix)

    def decode(self, message: Message) -> Optional[SettingsMap]:
        """
        Decode one message into a settings map.
        Returns None for empty input, unrecognised content or parse errors;
        never raises.
        """
        try:
            if message.is_binary:
                settings = self.decode_frame(message.payload)
            else:
                settings = self.decode_text(message.payload)
        except Exception as e:
            logging.warning(f"Conversion error: {e}")
            return None
        return settings or None

    def decode_text(self, data):
        if data is None or not data.strip():
            return None
        data = data.strip()

        if data.startswith("{"):
            return self._parse_json(data)
        if "," in data:
            return self._parse_csv(data)
        if "=" in data:
            return self._parse_key_value(data)
        return self._parse_command(data)

    def decode_frame(self, frame):
        if len(frame) != config.BINARY_FRAME_SIZE:
            raise ValueError(f"Binary frame is {len(frame)} bytes, expected {config.BINARY_FRAME_SIZE}")

        ident, version, dx, dy, dz, status, value = struct.unpack(config.BINARY_FRAME_FORMAT, frame)
        settings = {
            "device_id": _c_string(ident),
            "device_version": _c_string(version),
            "delta_x": dx,
            "delta_y": dy,
            "delta_z": dz,
        }
        unpack_switches(status, settings)
        settings["feedrate_value"] = value
        settings["feedrate_percent"] = feedrate_percent(value)
        return settings

    # --- JSON ---

    def _parse_json(self, data):
        try:
            root = json.loads(data)
        except json.JSONDecodeError as e:
            logging.warning(f"JSON parse error: {e}")
            return None

        if not isinstance(root, dict):
            logging.warning("JSON message is not an object.")
            return None

        if "ocp" in root:
            if not isinstance(root["ocp"], dict):
                raise ValueError("'ocp' is not an object")
            return self._parse_ocp_json(root["ocp"])

        settings = {}
        for key, value in root.items():
            if isinstance(value, bool):
                settings[key] = value
            elif isinstance(value, (int, float)):
                settings[key] = float(value)
            elif isinstance(value, str):
                settings[key] = value
            else:
                settings[key] = json.dumps(value, separators=(",", ":"))
        return settings

    def _parse_ocp_json(self, ocp):
        settings = {}

        device = _section(ocp, "device")
        for name, key in OCP_DEVICE_FIELDS:
            if name in device:
                settings[key] = _json_string(device[name], name)

        switches = _section(ocp, "switches")
        for name, key in OCP_SWITCH_FIELDS:
            if name in switches:
                settings[key] = _json_bool(switches[name], name)
        if "stepIndex" in switches:
            step_index = _json_int(switches["stepIndex"], "stepIndex")
            settings["step_index"] = step_index
            settings["step_size"] = self.step_sizes.lookup(step_index)

        feedrate = _section(ocp, "feedrate")
        for name, key in OCP_FEEDRATE_FIELDS:
            if name in feedrate:
                settings[key] = _json_number(feedrate[name], name)

        encoders = _section(ocp, "encoders")
        for name, key in OCP_ENCODER_FIELDS:
            if name in encoders:
                settings[key] = _json_number(encoders[name], name)

        return settings

    # --- CSV ---

    def _parse_csv(self, data):
        parts = [p.strip() for p in data.split(",")]
        if parts[0].startswith(self.device_id_prefix) or len(parts) >= OLD_SCHEMA_FIELDS:
            return self._parse_ocp_csv(parts)
        return None

    def _parse_ocp_csv(self, parts):
        settings = {"device_id": parts[0]}
        if len(parts) > 1:
            settings["device_version"] = parts[1]

        def number(index, key):
            if len(parts) > index:
                value = utils.parse_number(parts[index])
                if value is not None:
                    settings[key] = value

        number(2, "delta_x")
        number(3, "delta_y")
        number(4, "delta_z")

        if len(parts) >= NEW_SCHEMA_FIELDS:
            number(5, "pos_x")
            number(6, "pos_y")
            number(7, "pos_z")
            switches_at = 8
        else:
            switches_at = 5

        switches = self._csv_int(parts, switches_at)
        if switches is not None:
            unpack_switches(switches, settings)

        step_index = self._csv_int(parts, switches_at + 1)
        if step_index is not None:
            settings["step_index"] = step_index
            settings["step_size"] = self.step_sizes.lookup(step_index)

        feedrate = self._csv_int(parts, switches_at + 2)
        if feedrate is not None:
            settings["feedrate_value"] = feedrate
            settings["feedrate_percent"] = feedrate_percent(feedrate)

        return settings

    @staticmethod
    def _csv_int(parts, index):
        if len(parts) <= index:
            return None
        try:
            return int(parts[index])
        except ValueError:
            return None

    # --- Fallbacks ---

    def _parse_key_value(self, data):
        settings = {}
        for pair in data.replace("&", ";").split(";"):
            key, sep, raw = pair.partition("=")
            key = key.strip()
            if not sep or not key:
                continue
            raw = raw.strip()

            value = utils.parse_number(raw)
            if value is None:
                value = utils.parse_bool(raw)
            if value is None:
                value = raw
            settings[key] = value
        return settings

    def _parse_command(self, data):
        tokens = data.split()
        settings = {"Command": tokens[0]}
        if len(tokens) >= 2:
            value = utils.parse_number(tokens[1])
            if value is not None:
                settings["Value"] = value
        return settings
