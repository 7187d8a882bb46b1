# hourly_direction/formatter.py
"""
Display strings for predictions and model status.
"""

from typing import Any, Dict, Optional

from .config import DEFAULT_PRICE_PRECISION
from .models import Decision, Prediction

DECISION_STYLES = {
    Decision.UP: 'up',
    Decision.DOWN: 'down',
    Decision.NO_CALL: 'abstain',
}


def format_price(value: Optional[float], precision: int = DEFAULT_PRICE_PRECISION) -> str:
    """Thousands separators and a fixed number of decimals; '-' when missing"""
    if value is None:
        return '-'
    precision = max(0, int(precision))
    return f"{value:,.{precision}f}"


def format_prediction(prediction: Prediction) -> Dict[str, str]:
    """
    [FUNCTION SUMMARY]
    Purpose: Render a prediction as display strings
    Parameters:
        - prediction (Prediction): Result of a scoring pass
    Returns: dict - decision, confidence, signals, style
    Example: format_prediction(p)['confidence'] -> 'Confidence: 73.2% (p_up=0.73)'
    """
    signals = ', '.join(prediction.signals) if prediction.signals else '-'
    return {
        'decision': prediction.decision.value,
        'confidence': f"Confidence: {prediction.confidence * 100:.1f}% (p_up={prediction.prob_up:.2f})",
        'signals': f"Signals: {signals}",
        'style': DECISION_STYLES[prediction.decision],
    }


def format_status(status: Dict[str, Any], precision: int = DEFAULT_PRICE_PRECISION) -> Dict[str, str]:
    """Prior, ATR, last closed hour and hour open from HourlyModel.status()"""
    atr = status.get('atr')
    last_dir = status.get('last_closed_hour_dir', 0)

    if last_dir > 0:
        last_hour = 'UP'
    elif last_dir < 0:
        last_hour = 'DOWN'
    else:
        last_hour = '-'

    return {
        'prior': f"{status.get('prior_up', 0.5):.2f}",
        'atr': f"{atr:.4f}" if atr is not None else '-',
        'last_hour': last_hour,
        'hour_open': format_price(status.get('hour_open'), precision),
    }
