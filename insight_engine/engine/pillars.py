"""
Analytics pillar taxonomy.

The set is closed: nothing outside `Pillar` is ever accepted as a pillar.
"""

from enum import Enum
from typing import Any

from insight_engine.core.exceptions import UnknownPillar


class Pillar(str, Enum):
    """Analytics topic categories."""
    ENGAGEMENT = "engagement"
    RETENTION = "retention"
    MONETIZATION = "monetization"
    STORE = "store"
    USER_ACQUISITION = "userAcquisition"
    TECH_HEALTH = "techHealth"
    SOCIAL = "social"


# Taxonomy order, used wherever a deterministic pillar order is needed
ALL_PILLARS: tuple[Pillar, ...] = tuple(Pillar)

# Legacy short name used by older dashboard payloads
PILLAR_ALIASES = {"ua": Pillar.USER_ACQUISITION}

PILLAR_DESCRIPTIONS = {
    Pillar.ENGAGEMENT: "User activity, session duration, feature usage, DAU/MAU",
    Pillar.RETENTION: "Churn, cohort analysis, user retention rates",
    Pillar.MONETIZATION: "Revenue, ARPU, conversion rates, subscription metrics",
    Pillar.STORE: "Store sales, product performance, cart metrics",
    Pillar.USER_ACQUISITION: "User acquisition, marketing campaigns, channel performance",
    Pillar.TECH_HEALTH: "System uptime, performance, error rates, technical metrics",
    Pillar.SOCIAL: "Sharing, viral metrics, social media performance",
}


def is_valid_pillar(value: Any) -> bool:
    """Check whether a value names a pillar (aliases included)."""
    if isinstance(value, Pillar):
        return True
    if not isinstance(value, str):
        return False
    return value in PILLAR_ALIASES or value in {p.value for p in ALL_PILLARS}


def parse_pillar(value: Any, field: str = "pillars") -> Pillar:
    """
    Convert an external pillar name into a Pillar.

    Raises:
        UnknownPillar: if the value is not in the taxonomy
    """
    if isinstance(value, Pillar):
        return value
    if isinstance(value, str):
        if value in PILLAR_ALIASES:
            return PILLAR_ALIASES[value]
        try:
            return Pillar(value)
        except ValueError:
            pass
    raise UnknownPillar(value, field=field)
