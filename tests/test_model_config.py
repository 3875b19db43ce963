"""Tests for model configuration bundles."""

import json
import logging

import pytest

from config.model_config import (
    MODEL_WEIGHTS,
    ModelConfigError,
    get_model_config,
    load_model_weights,
    parse_model_config,
)


class TestRegistry:
    def test_v2_bundle(self):
        config = get_model_config("v2")
        assert config.sos.enabled
        assert config.sos.iterations == 3
        assert config.sos.weight == 0.05
        assert config.shrinkage.min_factor == 0.18
        assert config.shrinkage.max_factor == 0.42
        assert config.calibration_factor == 6.5
        assert config.talent_metrics == ("talent_composite", "blue_chips_pct", "commits_signal")

    def test_v1_has_no_adjustments(self):
        config = get_model_config("v1")
        assert not config.sos.enabled
        assert not config.shrinkage.enabled
        assert dict(config.talent_weights) == {}

    def test_unknown_version_lists_available(self):
        with pytest.raises(ModelConfigError, match="Available versions: v1, v2"):
            get_model_config("v3")

    def test_config_is_frozen(self):
        config = get_model_config("v2")
        with pytest.raises(AttributeError):
            config.calibration_factor = 1.0
        with pytest.raises(TypeError):
            config.offense_weights["ypp_off"] = 0.9


class TestParse:
    def test_unknown_metric_rejected(self):
        with pytest.raises(ModelConfigError, match="unknown offensive"):
            parse_model_config("bad", {"offensive_weights": {"points_per_game": 1.0}})

    def test_non_numeric_weight_rejected(self):
        with pytest.raises(ModelConfigError, match="not numeric"):
            parse_model_config("bad", {"offensive_weights": {"ypp_off": "heavy"}})

    def test_inverted_shrinkage_band_rejected(self):
        raw = {"shrinkage": {"min_factor": 0.5, "max_factor": 0.2}, "calibration_factor": 1.0}
        with pytest.raises(ModelConfigError, match="shrinkage band"):
            parse_model_config("bad", raw)

    def test_defaults_logged(self, caplog):
        with caplog.at_level(logging.INFO):
            config = parse_model_config("bare", {})
        assert config.hfa == 2.0
        assert "'hfa' not configured" in caplog.text
        assert any(
            r.levelno == logging.WARNING and "calibration_factor" in r.getMessage()
            for r in caplog.records
        )

    def test_nested_defaults_logged(self, caplog):
        raw = {
            "sos": {"enabled": True},
            "shrinkage": {"base_factor": 0.1},
            "calibration_factor": 2.0,
        }
        with caplog.at_level(logging.INFO):
            config = parse_model_config("partial", raw)

        assert config.sos.iterations == 3
        assert config.shrinkage.base_factor == 0.1
        assert config.shrinkage.max_factor == 0.42
        for name in ("sos.iterations", "sos.weight", "shrinkage.games_multipliers", "shrinkage.max_factor"):
            assert f"'{name}' not configured" in caplog.text
        assert "'shrinkage.base_factor' not configured" not in caplog.text
        assert "'sos.enabled' not configured" not in caplog.text

    def test_games_multipliers_sorted(self):
        raw = {"shrinkage": {"games_multipliers": [[8, 0.05], [3, 0.18]]}, "calibration_factor": 2.0}
        config = parse_model_config("x", raw)
        assert config.shrinkage.games_multipliers == ((3, 0.18), (8, 0.05))

    def test_performance_metrics_deduplicated(self):
        config = parse_model_config(
            "x",
            {
                "offensive_weights": {"ypp_off": 1.0},
                "defensive_weights": {"ypp_def": 1.0, "success_def": 0.5},
                "calibration_factor": 1.0,
            },
        )
        assert config.performance_metrics == ("ypp_off", "ypp_def", "success_def")


class TestWeightsFile:
    def test_loads_json_bundles(self, tmp_path):
        path = tmp_path / "weights.json"
        bundle = dict(MODEL_WEIGHTS["v2"], calibration_factor=7.25)
        path.write_text(json.dumps({"v2-tuned": bundle}))

        config = get_model_config("v2-tuned", path)
        assert config.calibration_factor == 7.25
        assert config.version == "v2-tuned"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ModelConfigError, match="not found"):
            load_model_weights(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "weights.json"
        path.write_text("{not json")
        with pytest.raises(ModelConfigError, match="not valid JSON"):
            load_model_weights(path)

    def test_builtin_registry_by_default(self):
        assert load_model_weights() is MODEL_WEIGHTS


class TestOverrides:
    def test_with_overrides_returns_copy(self):
        config = get_model_config("v2")
        tuned = config.with_overrides(sos_weight=0.1)
        assert tuned.sos.weight == 0.1
        assert config.sos.weight == 0.05

    def test_no_overrides_is_equal(self):
        config = get_model_config("v2")
        assert config.with_overrides() == config
