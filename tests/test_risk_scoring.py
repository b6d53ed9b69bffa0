"""
Tests: trend analysis and delay-risk scoring (no database).
"""

import pytest

from app.services.risk_service import delay_risk, score_entries, variance_history
from app.services.risk_trend import analyze_trend, observation_variance


class TestObservationVariance:
    def test_ratio_minus_hundred(self):
        assert observation_variance(8, 10) == pytest.approx(-20.0)

    def test_unplanned_production(self):
        assert observation_variance(5, 0) == 100.0

    def test_nothing_planned_nothing_done(self):
        assert observation_variance(0, 0) == 0.0


class TestAnalyzeTrend:
    def test_strict_decline(self):
        assert analyze_trend([10, 5, 1]) == 20

    def test_flat_step_is_not_decline(self):
        assert analyze_trend([10, 5, 5]) == 0

    def test_fewer_than_three_points(self):
        assert analyze_trend([1, 2]) == 0
        assert analyze_trend([]) == 0
        assert analyze_trend(None) == 0

    def test_only_last_three_points_matter(self):
        assert analyze_trend([-50, 40, 30, 20]) == 20
        assert analyze_trend([30, 20, 10, 15]) == 0


class TestDelayRisk:
    def test_base_is_inverse_ppc(self):
        assert delay_risk(60) == 40

    def test_trend_bonus_added(self):
        assert delay_risk(60, [0, -10, -20]) == 60

    def test_capped_at_hundred(self):
        assert delay_risk(10, [0, -10, -20]) == 100

    def test_never_negative(self):
        assert delay_risk(150) == 0

    @pytest.mark.parametrize("ppc_value", [0, 33, 70, 85, 100])
    def test_in_range(self, ppc_value):
        assert 0 <= delay_risk(ppc_value, [3, 2, 1]) <= 100


class TestScoreEntries:
    def test_no_entries(self):
        assert score_entries([]) is None

    def test_history_is_chronological(self):
        entries = [
            {"date": "2024-01-03", "actual_qty": 6, "planned_qty": 10},
            {"date": "2024-01-01", "actual_qty": 10, "planned_qty": 10},
            {"date": "2024-01-02", "actual_qty": 8, "planned_qty": 10},
        ]
        assert variance_history(entries) == pytest.approx([0.0, -20.0, -40.0])

        score = score_entries(entries)
        assert score.ppc == 80
        assert score.trend_bonus == 20
        assert score.risk_pct == 40
        assert score.classification == "MEDIUM"
        assert score.observations == 3

    def test_end_to_end_two_entries(self):
        entries = [
            {"date": "2024-01-01", "actual_qty": 8, "planned_qty": 10},
            {"date": "2024-01-02", "actual_qty": 12, "planned_qty": 10},
        ]
        score = score_entries(entries)
        assert score.ppc == 100
        assert score.classification == "LOW"
        assert score.risk_pct == 0
