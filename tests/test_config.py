from __future__ import annotations

import pytest

from insiderscope.config import Config, _clean_dsn, _env_bool
from insiderscope.sec.pipeline import IngestOptions


def test_options_come_from_config():
    cfg = Config(INGEST_DAYS=14, INGEST_SCAN_CAP=10, INGEST_STREAM_ID="s1")
    opts = IngestOptions.from_config(cfg)
    assert opts.recency_days == 14
    assert opts.scan_cap == 10
    assert opts.stream_id == "s1"
    assert opts.page_size == 100


def test_overrides_are_clamped():
    cfg = Config(INGEST_SAFETY_MARGIN_SECONDS=1.2)
    opts = IngestOptions.from_config(
        cfg,
        recency_days=0,
        max_pages=500,
        scan_cap=5000,
        min_interval_seconds=0,
        time_budget_seconds=0.5,
    )
    assert opts.recency_days == 1
    assert opts.max_pages == 50
    assert opts.scan_cap == opts.page_size
    assert opts.min_interval_seconds == 0.1
    assert opts.time_budget_seconds > opts.safety_margin_seconds

    assert IngestOptions.from_config(cfg, recency_days=9999).recency_days == 365


def test_none_override_keeps_config_value():
    cfg = Config(INGEST_MAX_PAGES=3)
    assert IngestOptions.from_config(cfg, max_pages=None).max_pages == 3


def test_unknown_override_is_rejected():
    with pytest.raises(TypeError):
        IngestOptions.from_config(Config(), pages=3)


def test_env_bool(monkeypatch):
    monkeypatch.setenv("X_FLAG", "yes")
    assert _env_bool("X_FLAG") is True
    monkeypatch.setenv("X_FLAG", "off")
    assert _env_bool("X_FLAG") is False
    monkeypatch.setenv("X_FLAG", "maybe")
    assert _env_bool("X_FLAG", None) is None
    monkeypatch.delenv("X_FLAG")
    assert _env_bool("X_FLAG", True) is True


def test_clean_dsn():
    assert _clean_dsn("psql 'postgresql://u:p@h/db'") == "postgresql://u:p@h/db"
    assert _clean_dsn(' "./data/x.sqlite" ') == "./data/x.sqlite"
