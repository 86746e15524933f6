"""
ETA estimator tests.
"""

from datetime import datetime, timedelta

import pytest
from backend.app.services import eta
from backend.app.services.eta import EtaConfidence, EtaStatus

NOW = datetime(2024, 9, 2, 8, 0, 0)


class TestSpeedSamples:

    def test_weighted_average_favours_recent(self):
        # (10*1 + 20*2 + 30*3) / 6 = 140 / 6
        assert eta.weighted_average_speed([10, 20, 30]) == pytest.approx(140 / 6)

    def test_weighted_average_of_nothing(self):
        assert eta.weighted_average_speed([]) is None

    def test_implausible_and_missing_readings_are_dropped(self):
        assert eta.filter_speed_samples([None, 0, -3, 15, 119.9, 120, 250]) == [15.0, 119.9]


class TestEstimate:

    def test_two_hundredths_of_a_degree_at_twenty(self):
        distance = 1.112
        result = eta.estimate(distance, [20], NOW)

        expected = (distance / 20) * 60 + 2
        assert result.duration_minutes == round(expected, 1)
        assert result.duration_minutes == pytest.approx(5.3, abs=0.05)
        assert result.eta == NOW + timedelta(minutes=expected)
        assert result.confidence == EtaConfidence.HIGH.value
        assert result.is_realtime is True
        assert result.status == EtaStatus.EN_ROUTE.value
        assert result.speed_kmh == 20

    def test_uses_weighted_speed(self):
        result = eta.estimate(10, [10, 20, 30], NOW)
        assert result.speed_kmh == round(140 / 6, 2)
        assert result.duration_minutes == round((10 / (140 / 6)) * 60 + 2, 1)

    def test_no_usable_samples_falls_back(self):
        result = eta.estimate(5, [None, 0, 300], NOW)

        assert result.speed_kmh == 25
        assert result.is_realtime is False
        assert result.confidence == EtaConfidence.LOW.value
        assert result.duration_minutes == round((5 / 25) * 60 + 2, 1)

    def test_slow_bus_is_medium_confidence(self):
        result = eta.estimate(1, [3, 4], NOW)
        assert result.confidence == EtaConfidence.MEDIUM.value
        assert result.is_realtime is True

    def test_inside_arrival_floor_is_arriving(self):
        result = eta.estimate(0.05, [20], NOW)

        assert result.status == EtaStatus.ARRIVING.value
        assert result.duration_minutes == 1
        assert result.eta == NOW + timedelta(minutes=1)
        assert result.confidence == EtaConfidence.HIGH.value

    @pytest.mark.parametrize("distance", [None, 0, -1])
    def test_unknown_distance(self, distance):
        result = eta.estimate(distance, [20], NOW)

        assert result.eta is None
        assert result.duration_minutes == 0
        assert result.confidence == EtaConfidence.LOW.value
        assert result.is_realtime is False

    def test_as_dict_is_json_safe(self):
        data = eta.estimate(2, [30], NOW).as_dict()
        assert isinstance(data["eta"], str)
        assert datetime.fromisoformat(data["eta"]) > NOW


class TestConfidence:

    def test_not_realtime_is_low(self):
        assert eta.eta_confidence({"is_realtime": False, "confidence": "high"}) == "low"

    def test_explicit_label_wins(self):
        assert eta.eta_confidence({"is_realtime": True, "confidence": "medium", "distance_km": 0.2}) == "medium"

    @pytest.mark.parametrize("distance_km, expected", [
        (0.5, "high"),
        (3, "medium"),
        (8, "low"),
        (None, "low"),
    ])
    def test_distance_fallback(self, distance_km, expected):
        assert eta.eta_confidence({"is_realtime": True, "distance_km": distance_km}) == expected


class TestFormatting:

    @pytest.mark.parametrize("minutes, expected", [
        (None, "N/A"),
        (0.2, "Arriving now"),
        (0.5, "1 minute"),
        (1, "1 minute"),
        (5.3, "5 minutes"),
        (59, "59 minutes"),
        (60, "1 hour"),
        (75, "1 hour 15 min"),
        (120, "2 hours"),
        (135, "2 hours 15 min"),
    ])
    def test_format_duration(self, minutes, expected):
        assert eta.format_duration(minutes) == expected

    def test_format_eta(self):
        assert eta.format_eta(NOW + timedelta(minutes=12), NOW) == "12 minutes"
        assert eta.format_eta(None, NOW) == "N/A"
        assert eta.format_eta(NOW - timedelta(minutes=3), NOW) == "Arriving now"


class TestAverageSpeed:

    def test_only_recent_positive_readings_count(self):
        readings = [
            (NOW - timedelta(minutes=30), 60),
            (NOW - timedelta(minutes=5), 20),
            (NOW - timedelta(minutes=2), 30),
            (NOW - timedelta(minutes=1), 0),
            (NOW - timedelta(minutes=1), None),
        ]
        assert eta.average_speed(readings, window_minutes=10, now=NOW) == 25

    def test_nothing_recent(self):
        assert eta.average_speed([(NOW - timedelta(hours=1), 40)], now=NOW) == 0
