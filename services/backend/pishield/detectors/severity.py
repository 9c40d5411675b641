"""
PiShield v1 - Severity Levels and Risk Classification
"""

import random
from typing import Dict, Tuple


# Severity levels
CRITICAL = "critical"
HIGH = "high"
MEDIUM = "medium"
LOW = "low"

# Relative frequency of simulated alerts; critical is the rarest
SEVERITY_WEIGHTS: Dict[str, int] = {
    CRITICAL: 1,
    HIGH: 3,
    MEDIUM: 5,
    LOW: 10,
}

# Risk levels
RISK_LOW = "Low"
RISK_MEDIUM = "Medium"
RISK_HIGH = "High"


def pick_severity(rng: random.Random, weights: Dict[str, int] = SEVERITY_WEIGHTS) -> str:
    """Draw a severity from the weighted distribution."""
    levels: Tuple[str, ...] = tuple(weights)
    return rng.choices(levels, weights=[weights[level] for level in levels], k=1)[0]


def compute_risk_level(critical_count: int, high_count: int) -> str:
    """
    Derive the dashboard risk level from recent critical/high alert counts.

    Args:
        critical_count: Recent critical alerts
        high_count: Recent high alerts

    Returns:
        "High", "Medium" or "Low"
    """
    if critical_count > 2 or high_count > 5:
        return RISK_HIGH

    if critical_count > 0 or high_count > 2:
        return RISK_MEDIUM

    return RISK_LOW
