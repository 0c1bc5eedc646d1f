"""Display unit conversion for dashboard readings.

Readings are stored in centimeters; the dashboard shows feet by default.
"""

from __future__ import annotations

CM_TO_FEET_FACTOR = 1 / 30.48

DISPLAY_UNITS = ("cm", "ft")


def cm_to_feet(value: float | None) -> float | None:
    """Convert centimeters to feet, rounded to 2 decimals."""
    if value is None:
        return None
    return round(value * CM_TO_FEET_FACTOR, 2)


def to_display_unit(value: float | None, unit: str) -> float | None:
    """Convert a centimeter value into the requested display unit.

    Raises:
        ValueError: If the unit is not one of ``DISPLAY_UNITS``.
    """
    if unit not in DISPLAY_UNITS:
        raise ValueError(f"Unsupported display unit: {unit!r}")
    if unit == "ft":
        return cm_to_feet(value)
    return value
