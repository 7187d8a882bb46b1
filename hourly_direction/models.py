# hourly_direction/models.py
"""
Data models shared by the direction model and its feed collaborators.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .exceptions import DirectionDataError


class Decision(str, Enum):
    """Directional call issued by the model"""
    UP = "UP"
    DOWN = "DOWN"
    NO_CALL = "NO CALL"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Bar:
    """Fixed-interval OHLC sample. Times are UTC epoch milliseconds."""
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    close_time: Optional[int] = None
    is_final: bool = True

    @property
    def is_up(self) -> bool:
        return self.close >= self.open

    @property
    def direction(self) -> int:
        """+1 when the bar closed at or above its open, -1 otherwise"""
        return 1 if self.is_up else -1

    @classmethod
    def from_kline(cls, row: Sequence[Any]) -> 'Bar':
        """
        Build a bar from a REST kline row.

        Row layout: [openTime, open, high, low, close, volume, closeTime, ...]
        """
        try:
            return cls(
                open_time=int(row[0]),
                open=float(row[1]),
                high=float(row[2]),
                low=float(row[3]),
                close=float(row[4]),
                volume=float(row[5]),
                close_time=int(row[6]),
            )
        except (IndexError, TypeError, ValueError) as e:
            raise DirectionDataError(
                f"Malformed kline row: {e}", data_type='kline', value=str(row)[:200]
            )

    @classmethod
    def from_stream(cls, kline: Dict[str, Any]) -> 'Bar':
        """Build a bar from the ``k`` payload of a kline stream event"""
        try:
            return cls(
                open_time=int(kline['t']),
                open=float(kline['o']),
                high=float(kline['h']),
                low=float(kline['l']),
                close=float(kline['c']),
                volume=float(kline.get('v', 0.0)),
                close_time=int(kline['T']) if 'T' in kline else None,
                is_final=bool(kline.get('x', False)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DirectionDataError(
                f"Malformed kline event: {e}", data_type='kline_event', value=str(kline)[:200]
            )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class HourlyStatistics:
    """
    Statistics derived from the hourly history.

    Replaced as a whole on every successful reload, never mutated in place.
    ``atr`` stays None until a reload with at least two bars succeeds.
    """
    prior_up: float = 0.5
    p_up_given_up: float = 0.5
    p_up_given_down: float = 0.5
    atr: Optional[float] = None
    last_closed_hour_dir: int = 0
    bar_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FeatureSet:
    """Intra-hour features extracted from the minute history"""
    latest: float
    delta: float
    scale: float
    z: float
    slope: float
    slope_z: float
    rsi: float


@dataclass
class Prediction:
    """Result of one scoring pass"""
    decision: Decision
    prob_up: float
    confidence: float
    signals: List[str] = field(default_factory=list)
    z: Optional[float] = None
    slope_z: Optional[float] = None
    rsi: Optional[float] = None

    @property
    def is_call(self) -> bool:
        return self.decision is not Decision.NO_CALL

    def to_dict(self) -> Dict[str, Any]:
        return {
            'decision': self.decision.value,
            'prob_up': self.prob_up,
            'confidence': self.confidence,
            'signals': list(self.signals),
            'z': self.z,
            'slope_z': self.slope_z,
            'rsi': self.rsi,
        }
