"""
OCP Link - serial bridge for a Teensy operator control panel.

Discovers the panel, keeps the serial link alive across unplugs and resets,
and decodes its messages into settings maps.
"""

__version__ = "1.0.0"
