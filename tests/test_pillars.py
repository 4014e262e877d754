"""
Pillar taxonomy tests.
"""

import pytest

from insight_engine.core.exceptions import UnknownPillar
from insight_engine.engine.pillars import ALL_PILLARS, Pillar, is_valid_pillar, parse_pillar


def test_taxonomy_is_closed_and_ordered():
    assert [p.value for p in ALL_PILLARS] == [
        "engagement",
        "retention",
        "monetization",
        "store",
        "userAcquisition",
        "techHealth",
        "social",
    ]


@pytest.mark.parametrize("value", ["retention", "techHealth", Pillar.SOCIAL, "ua"])
def test_valid_pillars(value):
    assert is_valid_pillar(value)


@pytest.mark.parametrize("value", ["Retention", "revenue", "", None, 3, "tech_health"])
def test_invalid_pillars(value):
    assert not is_valid_pillar(value)


def test_ua_is_the_only_alias():
    assert parse_pillar("ua") is Pillar.USER_ACQUISITION
    with pytest.raises(UnknownPillar):
        parse_pillar("acq")


def test_unknown_pillar_carries_field_and_value():
    with pytest.raises(UnknownPillar) as exc_info:
        parse_pillar("revenue", field="primary_pillar")

    error = exc_info.value
    assert error.status_code == 422
    assert error.context == {"field": "primary_pillar", "value": "revenue"}
