"""Unit tests for MergeConfig and presets."""

import dataclasses

import pytest

from mapmerge.merging import PRESETS, MergeConfig, config_from_preset


class TestMergeConfig:
    def test_defaults(self):
        config = MergeConfig()
        assert config.feature_type == "orb"
        assert config.confidence == 1.0
        assert config.fusion_rule == "max"
        assert config.refine is True

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            MergeConfig().confidence = 0.5

    @pytest.mark.parametrize(
        "overrides",
        [
            {"feature_type": "sift"},
            {"fusion_rule": "last"},
            {"confidence": -1.0},
            {"match_conf": 0.0},
            {"match_conf": 1.0},
            {"match_range": 0},
            {"n_workers": 0},
            {"max_canvas_cells": 0},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            MergeConfig(**overrides)

    def test_to_dict(self):
        params = MergeConfig(match_range=None).to_dict()
        assert params["match_range"] is None
        assert set(params) == {f.name for f in dataclasses.fields(MergeConfig)}


class TestPresets:
    @pytest.mark.parametrize("name", sorted(PRESETS))
    def test_all_presets_valid(self, name):
        assert isinstance(config_from_preset(name), MergeConfig)

    def test_fast(self):
        config = config_from_preset("fast")
        assert config.match_range == 1
        assert config.refine is False

    def test_robust(self):
        config = config_from_preset("robust")
        assert config.feature_type == "akaze"
        assert config.match_range is None

    def test_overrides(self):
        config = config_from_preset("robust", fusion_rule="first")
        assert config.fusion_rule == "first"
        assert config.feature_type == "akaze"

    def test_invalid_override_rejected(self):
        with pytest.raises(ValueError):
            config_from_preset("default", confidence=-2.0)

    def test_unknown_preset(self):
        with pytest.raises(KeyError):
            config_from_preset("turbo")
