"""
Tests for engine configuration loading.
"""
from __future__ import annotations

import logging

from clubengine.config import EngineConfig, load_config


def test_defaults():
    cfg = EngineConfig()
    assert cfg.ranking_window_days == 90
    assert cfg.ranking_top_n == 6
    assert cfg.weeks_per_season == 4
    assert cfg.lineup_deadline_hours == 2
    assert cfg.max_category_assignments == 3
    assert cfg.seed is None
    assert not cfg.sweep_expired_injuries


def test_load_yaml(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("db_path: /tmp/x.db\nseed: 42\nranking_top_n: 4\n", encoding="utf-8")
    cfg = load_config(path)
    assert cfg.db_path == "/tmp/x.db"
    assert cfg.seed == 42
    assert cfg.ranking_top_n == 4
    assert cfg.ranking_window_days == 90


def test_unknown_keys_are_ignored_with_warning(tmp_path, caplog):
    path = tmp_path / "engine.yaml"
    path.write_text("seed: 1\nbogus: true\n", encoding="utf-8")
    with caplog.at_level(logging.WARNING, logger="clubengine.config"):
        cfg = load_config(path)
    assert cfg.seed == 1
    assert "bogus" in caplog.text


def test_missing_file_falls_back(tmp_path, caplog):
    with caplog.at_level(logging.WARNING, logger="clubengine.config"):
        cfg = load_config(tmp_path / "absent.yaml")
    assert cfg == EngineConfig()
    assert "not found" in caplog.text


def test_invalid_yaml_falls_back(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("seed: [1, 2\n", encoding="utf-8")
    assert load_config(path) == EngineConfig()


def test_non_mapping_falls_back(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    assert load_config(path) == EngineConfig()


def test_empty_file_and_none(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == EngineConfig()
    assert load_config(None) == EngineConfig()


def test_round_trip_dict():
    cfg = EngineConfig(seed=3, weeks_per_season=5)
    assert EngineConfig.from_dict(cfg.to_dict()) == cfg
