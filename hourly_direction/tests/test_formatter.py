# hourly_direction/tests/test_formatter.py
"""
Module: Formatter Tests
Purpose: Display strings for prices, predictions and status
"""

from hourly_direction.formatter import format_prediction, format_price, format_status
from hourly_direction.models import Decision, Prediction


class TestFormatPrice:
    """Test price rendering"""

    def test_thousands_and_decimals(self):
        assert format_price(64123.456, 2) == "64,123.46"
        assert format_price(0.000123, 6) == "0.000123"
        assert format_price(1500, 0) == "1,500"

    def test_missing_price(self):
        assert format_price(None, 2) == "-"


class TestFormatPrediction:
    """Test prediction rendering"""

    def test_up_call(self):
        prediction = Prediction(
            decision=Decision.UP,
            prob_up=0.7321,
            confidence=0.7321,
            signals=["prior=0.60", "above open strong (z=0.30)", "RSI 50 neutral"],
        )
        shown = format_prediction(prediction)

        assert shown['decision'] == "UP"
        assert shown['confidence'] == "Confidence: 73.2% (p_up=0.73)"
        assert shown['signals'] == "Signals: prior=0.60, above open strong (z=0.30), RSI 50 neutral"
        assert shown['style'] == "up"

    def test_abstain(self):
        prediction = Prediction(Decision.NO_CALL, 0.5, 0.5, ["insufficient data"])
        shown = format_prediction(prediction)

        assert shown['decision'] == "NO CALL"
        assert shown['style'] == "abstain"
        assert shown['confidence'] == "Confidence: 50.0% (p_up=0.50)"

    def test_down_call_without_signals(self):
        shown = format_prediction(Prediction(Decision.DOWN, 0.2, 0.8))
        assert shown['style'] == "down"
        assert shown['signals'] == "Signals: -"


class TestFormatStatus:
    """Test status rendering"""

    def test_full_status(self):
        status = {
            'prior_up': 0.6499,
            'atr': 123.456789,
            'last_closed_hour_dir': -1,
            'hour_open': 64000.5,
        }
        shown = format_status(status, 2)

        assert shown == {
            'prior': "0.65",
            'atr': "123.4568",
            'last_hour': "DOWN",
            'hour_open': "64,000.50",
        }

    def test_empty_model(self):
        shown = format_status({'prior_up': 0.5, 'atr': None, 'last_closed_hour_dir': 0,
                               'hour_open': None})
        assert shown['atr'] == "-"
        assert shown['last_hour'] == "-"
        assert shown['hour_open'] == "-"
