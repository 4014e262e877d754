"""
Per-user pillar relevance weights and the decay-and-boost update.

Each classified question nudges the profile toward its pillars while every
other pillar fades. Weights always stay inside [0, 1] and every pillar of the
taxonomy is always present.

Decay can be indexed two ways:

- ``event``: one decay step per update, regardless of wall-clock time.
- ``time``: ``decay_factor ** elapsed_days`` since the last update, also applied
  lazily when weights are read. With the default 0.95 this gives roughly a
  two-week half-life.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel, model_validator

from insight_engine.core.config import settings
from insight_engine.engine.pillars import ALL_PILLARS, Pillar, parse_pillar
from insight_engine.engine.schemas import IntentClassification

DecayMode = Literal["event", "time"]


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class PillarWeights(RootModel[dict[Pillar, float]]):
    """Total mapping from every pillar to a weight in [0, 1]."""

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_total(self) -> "PillarWeights":
        missing = [p.value for p in ALL_PILLARS if p not in self.root]
        if missing:
            raise ValueError(f"Missing pillar weights: {missing}")
        for pillar, weight in self.root.items():
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f"Weight for {pillar.value} out of range: {weight}")
        return self

    @classmethod
    def default(cls, value: Optional[float] = None) -> "PillarWeights":
        value = settings.weight_default_value if value is None else value
        return cls({pillar: value for pillar in ALL_PILLARS})

    @classmethod
    def from_storage(cls, data: dict[str, float]) -> "PillarWeights":
        """Build from a persisted {pillar_name: weight} dict."""
        return cls({parse_pillar(name, field="weights"): float(w) for name, w in data.items()})

    def __getitem__(self, pillar: Pillar | str) -> float:
        return self.root[parse_pillar(pillar)]

    def items(self) -> list[tuple[Pillar, float]]:
        """Pillar/weight pairs in taxonomy order."""
        return [(pillar, self.root[pillar]) for pillar in ALL_PILLARS]

    def as_dict(self) -> dict[str, float]:
        return {pillar.value: weight for pillar, weight in self.items()}

    def ranked(self) -> list[tuple[Pillar, float]]:
        """Pillars sorted by weight, strongest first."""
        return sorted(self.items(), key=lambda item: item[1], reverse=True)


class DecayPolicy(BaseModel):
    """The decay/boost constants applied to every update."""

    model_config = ConfigDict(frozen=True)

    decay_factor: float = Field(default=0.95, gt=0.0, le=1.0)
    boost_factor: float = Field(default=0.10, ge=0.0, le=1.0)
    mode: DecayMode = "event"

    @classmethod
    def from_settings(cls) -> "DecayPolicy":
        return cls(
            decay_factor=settings.weight_decay_factor,
            boost_factor=settings.weight_boost_factor,
            mode=settings.weight_decay_mode,
        )

    def decay_multiplier(self, elapsed_days: Optional[float] = None) -> float:
        """Multiplier applied to every weight for one update."""
        if self.mode == "event":
            return self.decay_factor
        return self.decay_factor ** max(elapsed_days or 0.0, 0.0)


def decay_weights(weights: PillarWeights, multiplier: float) -> PillarWeights:
    """Scale every weight by the multiplier, clamped to [0, 1]."""
    return PillarWeights({pillar: clamp(w * multiplier) for pillar, w in weights.items()})


def update_weights(
    prior: PillarWeights,
    intent: IntentClassification,
    policy: DecayPolicy,
    elapsed_days: Optional[float] = None,
) -> PillarWeights:
    """
    Decay every pillar, then boost the intent's affected pillars.

    Pure function of its inputs. `elapsed_days` only matters in time mode.
    """
    decayed = decay_weights(prior, policy.decay_multiplier(elapsed_days))
    boost = policy.boost_factor * intent.confidence
    affected = intent.affected_pillars

    return PillarWeights(
        {
            pillar: clamp(weight + boost) if pillar in affected else weight
            for pillar, weight in decayed.items()
        }
    )


def weights_as_of(
    stored: PillarWeights,
    policy: DecayPolicy,
    elapsed_days: Optional[float],
) -> PillarWeights:
    """Weights as they should be read now; time mode decays lazily."""
    if policy.mode != "time" or not elapsed_days:
        return stored
    return decay_weights(stored, policy.decay_multiplier(elapsed_days))
