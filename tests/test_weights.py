"""
Decay-and-boost weight update tests.
"""

import random

import pytest
from pydantic import ValidationError

from insight_engine.engine.pillars import ALL_PILLARS, Pillar
from insight_engine.engine.schemas import IntentClassification
from insight_engine.engine.weights import (
    DecayPolicy,
    PillarWeights,
    update_weights,
    weights_as_of,
)


def intent(*pillars: Pillar, confidence: float = 1.0, primary: Pillar = None) -> IntentClassification:
    return IntentClassification(
        pillars=list(pillars),
        confidence=confidence,
        primary_pillar=primary or pillars[0],
    )


def random_intent(rng: random.Random) -> IntentClassification:
    pillars = rng.sample(ALL_PILLARS, rng.randint(1, 3))
    return IntentClassification(
        pillars=pillars,
        confidence=rng.random(),
        primary_pillar=rng.choice(ALL_PILLARS),
    )


def test_single_retention_update():
    """Default weights, one fully confident retention question."""
    policy = DecayPolicy(decay_factor=0.95, boost_factor=0.1)
    result = update_weights(PillarWeights.default(0.5), intent(Pillar.RETENTION), policy)

    assert result[Pillar.RETENTION] == pytest.approx(0.575)
    for pillar in ALL_PILLARS:
        if pillar is not Pillar.RETENTION:
            assert result[pillar] == pytest.approx(0.475)


def test_boost_scales_with_confidence():
    policy = DecayPolicy()
    result = update_weights(PillarWeights.default(0.5), intent(Pillar.SOCIAL, confidence=0.5), policy)
    assert result[Pillar.SOCIAL] == pytest.approx(0.475 + 0.05)


def test_primary_pillar_is_always_boosted():
    policy = DecayPolicy()
    result = update_weights(
        PillarWeights.default(0.5),
        intent(Pillar.ENGAGEMENT, primary=Pillar.MONETIZATION),
        policy,
    )
    assert result[Pillar.ENGAGEMENT] == pytest.approx(0.575)
    assert result[Pillar.MONETIZATION] == pytest.approx(0.575)
    assert result[Pillar.STORE] == pytest.approx(0.475)


def test_boost_is_clamped_at_one():
    policy = DecayPolicy(decay_factor=1.0, boost_factor=1.0)
    result = update_weights(PillarWeights.default(0.9), intent(Pillar.STORE), policy)
    assert result[Pillar.STORE] == 1.0


def test_update_is_pure():
    prior = PillarWeights.default(0.5)
    update_weights(prior, intent(Pillar.RETENTION), DecayPolicy())
    assert prior.as_dict() == {p.value: 0.5 for p in ALL_PILLARS}


def test_weights_must_cover_every_pillar():
    with pytest.raises(ValidationError):
        PillarWeights({Pillar.RETENTION: 0.5})


def test_weights_must_stay_in_range():
    values = {p: 0.5 for p in ALL_PILLARS}
    values[Pillar.SOCIAL] = 1.5
    with pytest.raises(ValidationError):
        PillarWeights(values)


def test_from_storage_accepts_legacy_alias():
    stored = {p.value: 0.5 for p in ALL_PILLARS if p is not Pillar.USER_ACQUISITION}
    stored["ua"] = 0.3
    weights = PillarWeights.from_storage(stored)
    assert weights[Pillar.USER_ACQUISITION] == 0.3


def test_ranked_strongest_first():
    weights = update_weights(PillarWeights.default(0.5), intent(Pillar.TECH_HEALTH), DecayPolicy())
    assert weights.ranked()[0][0] is Pillar.TECH_HEALTH


@pytest.mark.parametrize("seed", range(20))
def test_weights_stay_bounded_for_any_sequence(seed):
    rng = random.Random(seed)
    policy = DecayPolicy(decay_factor=rng.uniform(0.5, 1.0), boost_factor=rng.uniform(0.0, 1.0))
    weights = PillarWeights({p: rng.random() for p in ALL_PILLARS})

    for _ in range(50):
        weights = update_weights(weights, random_intent(rng), policy)
        assert all(0.0 <= w <= 1.0 for _, w in weights.items())


@pytest.mark.parametrize("seed", range(20))
def test_untouched_pillars_never_increase(seed):
    rng = random.Random(seed)
    policy = DecayPolicy(decay_factor=rng.uniform(0.5, 1.0), boost_factor=rng.uniform(0.0, 1.0))
    weights = PillarWeights({p: rng.random() for p in ALL_PILLARS})

    for _ in range(30):
        classification = random_intent(rng)
        updated = update_weights(weights, classification, policy)
        decayed_value = {p: min(1.0, w * policy.decay_factor) for p, w in weights.items()}
        for pillar, value in updated.items():
            if pillar in classification.affected_pillars:
                assert value >= decayed_value[pillar] - 1e-12
            else:
                assert value <= weights[pillar] + 1e-12
        weights = updated


def test_event_mode_ignores_elapsed_time():
    policy = DecayPolicy(mode="event")
    assert policy.decay_multiplier(30) == 0.95
    stored = PillarWeights.default(0.5)
    assert weights_as_of(stored, policy, 30) is stored


def test_time_mode_decays_by_elapsed_days():
    policy = DecayPolicy(mode="time")
    assert policy.decay_multiplier(2) == pytest.approx(0.95 ** 2)
    assert policy.decay_multiplier(0) == 1.0

    read = weights_as_of(PillarWeights.default(0.5), policy, 14)
    assert read[Pillar.RETENTION] == pytest.approx(0.5 * 0.95 ** 14)


def test_time_mode_update_uses_elapsed_days():
    policy = DecayPolicy(mode="time")
    result = update_weights(PillarWeights.default(0.5), intent(Pillar.RETENTION), policy, elapsed_days=3)
    assert result[Pillar.ENGAGEMENT] == pytest.approx(0.5 * 0.95 ** 3)
    assert result[Pillar.RETENTION] == pytest.approx(0.5 * 0.95 ** 3 + 0.1)
