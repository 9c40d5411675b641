"""
PiShield v1 - Detectors Package

The simulator lives in ``pishield.detectors.simulator``; it is not re-exported
here because it depends on ``pishield.stats``, which imports this package.
"""

from pishield.detectors.severity import (
    compute_risk_level,
    pick_severity,
    SEVERITY_WEIGHTS,
    CRITICAL,
    HIGH,
    MEDIUM,
    LOW,
)

__all__ = [
    "compute_risk_level",
    "pick_severity",
    "SEVERITY_WEIGHTS",
    "CRITICAL",
    "HIGH",
    "MEDIUM",
    "LOW",
]
