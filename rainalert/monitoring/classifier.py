"""Flood severity classification from sensor distance.

The sensor measures the distance from a fixed mount down to the water
surface, so a shorter distance means higher water. All thresholds are in
centimeters.
"""

from __future__ import annotations

import math

from rainalert.core.models import AlertLevel, FloodSeverity

# Ordered (upper bound inclusive, severity) bands, most severe first.
# Anything above the last bound is Safe.
SEVERITY_THRESHOLDS: tuple[tuple[float, FloodSeverity], ...] = (
    (30.48, FloodSeverity.CRITICAL),
    (60.96, FloodSeverity.DANGER),
    (76.2, FloodSeverity.WARNING),
)

ALERT_MESSAGES: dict[AlertLevel, str] = {
    AlertLevel.WARNING: "Warning: Rising Water Level.",
    AlertLevel.DANGER: "Danger: High Water Level!",
    AlertLevel.CRITICAL: "Critical Flood Level! Immediate action required.",
}


def classify_distance(distance: float) -> FloodSeverity:
    """Classify a distance-to-water reading into a severity band.

    Each band is closed at its upper bound and open at its lower bound:
    ``76.2`` is Warning, ``76.2001`` is Safe.

    Args:
        distance: Distance to the water surface in centimeters.

    Returns:
        The severity band for the distance.

    Raises:
        ValueError: If the distance is NaN or infinite.
    """
    if not math.isfinite(distance):
        raise ValueError(f"distance must be a finite number, got {distance!r}")

    for upper_bound, severity in SEVERITY_THRESHOLDS:
        if distance <= upper_bound:
            return severity
    return FloodSeverity.SAFE


def alert_level_for(severity: FloodSeverity) -> AlertLevel | None:
    """Return the alert level for an adverse severity, or None for Safe."""
    if severity == FloodSeverity.SAFE:
        return None
    return AlertLevel(severity.value)


def alert_message_for(level: AlertLevel) -> str:
    """Return the fixed alert message template for a level."""
    return ALERT_MESSAGES[level]


def severity_from_status_tag(status_tag: str) -> FloodSeverity | None:
    """Map the sensor's advisory status tag to a severity.

    The tag is free-form text reported by the sensor firmware; only the
    four known band names are recognised (case-insensitive).

    Returns:
        The matching severity, or None if the tag is not a known band.
    """
    normalized = status_tag.strip().lower()
    for severity in FloodSeverity:
        if severity.value.lower() == normalized:
            return severity
    return None
