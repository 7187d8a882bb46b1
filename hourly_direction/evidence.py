# hourly_direction/evidence.py
"""
Evidence ladders for the fusion step.

Each source is an ordered table of (predicate, logit adjustment, reason
template) rules. The first rule whose predicate holds is applied; the last
rule of every table always matches. Adding a new evidence source means
adding a table, not another if/else chain.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .models import FeatureSet


@dataclass(frozen=True)
class EvidenceRule:
    predicate: Callable[[float], bool]
    adjustment: float
    template: Optional[str]  # None records no reason

    def reason(self, value: float) -> Optional[str]:
        if self.template is None:
            return None
        return self.template.format(value=value)


@dataclass(frozen=True)
class EvidenceSource:
    name: str
    feature: str  # FeatureSet attribute the rules read
    rules: Tuple[EvidenceRule, ...]

    def evaluate(self, features: FeatureSet) -> Tuple[float, Optional[str]]:
        value = getattr(features, self.feature)
        for rule in self.rules:
            if rule.predicate(value):
                return rule.adjustment, rule.reason(value)
        return 0.0, None


def _always(_value: float) -> bool:
    return True


# Distance from the hour open; most extreme bucket wins
DISPLACEMENT = EvidenceSource('displacement', 'z', (
    EvidenceRule(lambda z: z > 0.15, 0.6, "above open strong (z={value:.2f})"),
    EvidenceRule(lambda z: z > 0.05, 0.25, "above open (z={value:.2f})"),
    EvidenceRule(lambda z: z < -0.15, -0.6, "below open strong (z={value:.2f})"),
    EvidenceRule(lambda z: z < -0.05, -0.25, "below open (z={value:.2f})"),
    EvidenceRule(_always, 0.0, "near open (z={value:.2f})"),
))

SLOPE = EvidenceSource('slope', 'slope_z', (
    EvidenceRule(lambda s: s > 0.2, 0.35, "positive slope (slopeZ={value:.2f})"),
    EvidenceRule(lambda s: s < -0.2, -0.35, "negative slope (slopeZ={value:.2f})"),
    EvidenceRule(_always, 0.0, None),
))

# Neutral band is 45 <= rsi <= 55
OSCILLATOR = EvidenceSource('oscillator', 'rsi', (
    EvidenceRule(lambda r: r > 65, 0.25, "RSI {value:.0f} high"),
    EvidenceRule(lambda r: r > 55, 0.10, "RSI {value:.0f} mid+"),
    EvidenceRule(lambda r: r < 35, -0.25, "RSI {value:.0f} low"),
    EvidenceRule(lambda r: r < 45, -0.10, "RSI {value:.0f} mid-"),
    EvidenceRule(_always, 0.0, "RSI {value:.0f} neutral"),
))

DEFAULT_SOURCES: Tuple[EvidenceSource, ...] = (DISPLACEMENT, SLOPE, OSCILLATOR)


def apply_evidence(logit: float, features: FeatureSet,
                   sources: Tuple[EvidenceSource, ...] = DEFAULT_SOURCES) -> Tuple[float, List[str]]:
    """
    Accumulate every source's adjustment onto ``logit`` in table order.

    Returns: (updated logit, reasons in the order evidence was applied)
    """
    reasons: List[str] = []
    for source in sources:
        adjustment, reason = source.evaluate(features)
        logit += adjustment
        if reason is not None:
            reasons.append(reason)
    return logit, reasons
