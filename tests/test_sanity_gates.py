"""Tests for sanity gates and stage instrumentation."""

import logging

import pandas as pd
import pytest

from cfb_power.data.rating_store import TeamRating
from cfb_power.ratings.instrumentation import StageLog, StageStats
from cfb_power.ratings.sanity_gates import (
    GateThresholds,
    SanityGateError,
    check_sanity_gates,
    top_offenders,
)


def _ratings(powers: list[float]) -> list[TeamRating]:
    return [
        TeamRating(
            team_id=f"T{i:02d}",
            season=2024,
            model_version="v2",
            offense_rating=p,
            defense_rating=0.0,
            power_rating=p,
        )
        for i, p in enumerate(powers)
    ]


HEALTHY = [12.0, 8.5, 4.0, 1.5, -2.0, -6.5, -9.0, -11.0]


class TestGates:
    def test_healthy_ratings_pass(self):
        report = check_sanity_gates(_ratings(HEALTHY))
        assert report.passed
        report.raise_for_failures()

    def test_gate_b_fails_on_half_zeros(self):
        powers = [0.0, 0.0, 0.0, 0.0, 5.0, -5.0, 10.0, -10.0]
        report = check_sanity_gates(_ratings(powers), thresholds=GateThresholds(max_zero_pct=0.02))
        gate_b = report.get("gate_b_zeros")
        assert not gate_b.passed
        assert gate_b.value == pytest.approx(0.5)
        assert report.get("gate_a_stddev").passed

    def test_gate_a_fails_on_collapsed_ratings(self):
        powers = [0.11, 0.12, 0.10, 0.13, 0.09, 0.12]
        report = check_sanity_gates(_ratings(powers), thresholds=GateThresholds(min_std=0.5))
        assert not report.get("gate_a_stddev").passed
        assert report.get("gate_b_zeros").passed

    def test_near_zero_is_not_zero(self):
        powers = [1e-12, -1e-12] + HEALTHY
        report = check_sanity_gates(_ratings(powers))
        assert report.get("gate_b_zeros").value == 0.0

    def test_raise_for_failures(self):
        report = check_sanity_gates(_ratings([0.0] * 6))
        with pytest.raises(SanityGateError, match="gate_a_stddev"):
            report.raise_for_failures()

    def test_failure_logs_offenders(self, caplog):
        powers = [0.0] * 10 + [40.0, -35.0]
        with caplog.at_level(logging.ERROR):
            report = check_sanity_gates(_ratings(powers), thresholds=GateThresholds(top_n=2))
        assert not report.passed
        assert report.offenders == [("T10", 40.0), ("T11", -35.0)]
        assert "T10" in caplog.text


class TestReadbackIntegrity:
    def test_matching_readback_passes(self):
        ratings = _ratings(HEALTHY)
        report = check_sanity_gates(ratings, readback=_ratings(HEALTHY))
        assert report.get("readback_integrity").passed

    def test_truncated_values_fail(self):
        ratings = _ratings(HEALTHY)
        truncated = _ratings([round(p / 3, 1) for p in HEALTHY])
        report = check_sanity_gates(ratings, readback=truncated)
        assert not report.get("readback_integrity").passed

    def test_missing_rows_fail(self):
        ratings = _ratings(HEALTHY)
        report = check_sanity_gates(ratings, readback=_ratings(HEALTHY)[:-1], pre_write_std=None)
        assert not report.get("readback_integrity").passed

    def test_no_readback_skips_check(self):
        report = check_sanity_gates(_ratings(HEALTHY))
        assert report.get("readback_integrity") is None


class TestTopOffenders:
    def test_sorted_by_absolute_value(self):
        offenders = top_offenders(_ratings([1.0, -9.0, 4.0]), n=2)
        assert offenders == [("T01", -9.0), ("T02", 4.0)]


class TestStageLog:
    def test_stage_stats(self):
        stats = StageStats.from_values("post-calibration", [0.0, 2.0, -2.0, 4.0])
        assert stats.count == 4
        assert stats.mean == pytest.approx(1.0)
        assert stats.std == pytest.approx(pd.Series([0.0, 2.0, -2.0, 4.0]).std(ddof=0))
        assert stats.min == -2.0
        assert stats.max == 4.0
        assert stats.zero_count == 1
        assert stats.zero_pct == pytest.approx(0.25)

    def test_empty_stage(self):
        stats = StageStats.from_values("readback", [])
        assert stats.count == 0
        assert stats.std == 0.0

    def test_ordered_records(self):
        log = StageLog()
        log.record("raw baseline", [1.0, -1.0])
        log.record("SoS iteration 1", [1.2, -1.2])
        log.record("raw baseline", [3.0, -3.0])
        assert [s.stage for s in log] == ["raw baseline", "SoS iteration 1", "raw baseline"]
        assert log.get("raw baseline").max == 3.0
        assert log.get("missing stage") is None

    def test_to_dataframe_and_csv(self, tmp_path):
        log = StageLog()
        log.record("pre-shrinkage", [1.0, 2.0, 3.0])
        df = log.to_dataframe()
        assert list(df.columns) == StageLog.COLUMNS
        assert len(df) == 1

        path = log.to_csv(tmp_path / "stages.csv")
        assert pd.read_csv(path)["stage"].tolist() == ["pre-shrinkage"]

    def test_empty_log_dataframe(self):
        df = StageLog().to_dataframe()
        assert df.empty
        assert list(df.columns) == StageLog.COLUMNS
