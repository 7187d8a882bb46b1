# hourly_direction/tests/test_evidence.py
"""
Module: Evidence Ladder Tests
Purpose: Bucket adjustments, boundaries, reason strings and monotonicity
"""

import pytest

from hourly_direction.evidence import (
    DEFAULT_SOURCES, DISPLACEMENT, OSCILLATOR, SLOPE,
    EvidenceRule, EvidenceSource, apply_evidence
)
from hourly_direction.models import FeatureSet


def features(z=0.0, slope_z=0.0, rsi=50.0):
    return FeatureSet(latest=100.0, delta=0.0, scale=1.0, z=z, slope=0.0, slope_z=slope_z, rsi=rsi)


class TestDisplacement:
    """Test the displacement ladder"""

    @pytest.mark.parametrize('z, adjustment, reason', [
        (0.30, 0.6, "above open strong (z=0.30)"),
        (0.10, 0.25, "above open (z=0.10)"),
        (0.00, 0.0, "near open (z=0.00)"),
        (-0.10, -0.25, "below open (z=-0.10)"),
        (-0.30, -0.6, "below open strong (z=-0.30)"),
    ])
    def test_buckets(self, z, adjustment, reason):
        """Test each bucket's adjustment and reason"""
        assert DISPLACEMENT.evaluate(features(z=z)) == (pytest.approx(adjustment), reason)

    def test_boundaries_fall_into_weaker_bucket(self):
        """Test thresholds are strict inequalities"""
        assert DISPLACEMENT.evaluate(features(z=0.15))[0] == pytest.approx(0.25)
        assert DISPLACEMENT.evaluate(features(z=0.05))[0] == 0.0
        assert DISPLACEMENT.evaluate(features(z=-0.05))[0] == 0.0
        assert DISPLACEMENT.evaluate(features(z=-0.15))[0] == pytest.approx(-0.25)


class TestSlope:
    """Test the momentum ladder"""

    def test_active_buckets_have_reasons(self):
        assert SLOPE.evaluate(features(slope_z=0.5)) == (pytest.approx(0.35), "positive slope (slopeZ=0.50)")
        assert SLOPE.evaluate(features(slope_z=-0.5)) == (pytest.approx(-0.35), "negative slope (slopeZ=-0.50)")

    def test_neutral_has_no_reason(self):
        """Test a flat slope adds nothing and records nothing"""
        assert SLOPE.evaluate(features(slope_z=0.2)) == (0.0, None)
        assert SLOPE.evaluate(features(slope_z=-0.2)) == (0.0, None)


class TestOscillator:
    """Test the five RSI buckets"""

    @pytest.mark.parametrize('rsi, adjustment, reason', [
        (70.0, 0.25, "RSI 70 high"),
        (65.0, 0.10, "RSI 65 mid+"),
        (60.0, 0.10, "RSI 60 mid+"),
        (55.0, 0.0, "RSI 55 neutral"),
        (50.0, 0.0, "RSI 50 neutral"),
        (45.0, 0.0, "RSI 45 neutral"),
        (40.0, -0.10, "RSI 40 mid-"),
        (35.0, -0.10, "RSI 35 mid-"),
        (30.0, -0.25, "RSI 30 low"),
    ])
    def test_buckets(self, rsi, adjustment, reason):
        """Test bucket edges and reason rounding"""
        assert OSCILLATOR.evaluate(features(rsi=rsi)) == (pytest.approx(adjustment), reason)

    def test_reason_rounds_to_integer(self):
        assert OSCILLATOR.evaluate(features(rsi=66.6))[1] == "RSI 67 high"


class TestApplyEvidence:
    """Test accumulation across sources"""

    def test_reasons_in_source_order(self):
        """Test displacement, slope and oscillator reasons appear in that order"""
        value, reasons = apply_evidence(0.0, features(z=0.3, slope_z=0.5, rsi=70.0))

        assert value == pytest.approx(0.6 + 0.35 + 0.25)
        assert reasons == [
            "above open strong (z=0.30)",
            "positive slope (slopeZ=0.50)",
            "RSI 70 high",
        ]

    def test_custom_source(self):
        """Test a new evidence table plugs in without touching existing ones"""
        volume = EvidenceSource('volume', 'delta', (
            EvidenceRule(lambda d: d > 1.0, 0.5, "big move ({value:.1f})"),
        ))
        value, reasons = apply_evidence(1.0, features(), DEFAULT_SOURCES + (volume,))

        # delta is 0.0 so the volume rule does not match
        assert value == pytest.approx(1.0)
        assert reasons == ["near open (z=0.00)", "RSI 50 neutral"]

    def test_monotonic_in_displacement(self):
        """Test increasing z never decreases the accumulated logit"""
        zs = [i / 100.0 for i in range(-50, 51)]
        values = [apply_evidence(0.0, features(z=z))[0] for z in zs]

        assert all(b >= a for a, b in zip(values, values[1:]))
        assert values[-1] > values[0]
