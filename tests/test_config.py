"""Tests for _config module."""

import os

import pytest

from ftflayer._config import LayerConfig


def test_config_defaults() -> None:
    cfg = LayerConfig()
    assert cfg.provider_id == 1
    assert cfg.provider_name == "trace"
    assert cfg.process_id is None
    assert cfg.default_category == "default"
    assert cfg.eligibility_field == "ftf"
    assert cfg.category_field == "category"
    assert cfg.max_consecutive_failures == 64


def test_config_custom_values() -> None:
    cfg = LayerConfig(
        provider_id=7,
        provider_name="renderer",
        process_id=4242,
        default_category="misc",
        eligibility_field="trace",
        category_field="cat",
    )
    assert cfg.provider_id == 7
    assert cfg.provider_name == "renderer"
    assert cfg.resolved_process_id == 4242
    assert cfg.default_category == "misc"
    assert cfg.eligibility_field == "trace"
    assert cfg.category_field == "cat"


def test_process_id_auto_detected() -> None:
    assert LayerConfig().resolved_process_id == os.getpid()


def test_config_is_frozen() -> None:
    cfg = LayerConfig()
    try:
        cfg.provider_name = "changed"  # type: ignore[misc]
        assert False, "Should have raised"
    except AttributeError:
        pass


def test_provider_id_must_fit_32_bits() -> None:
    with pytest.raises(ValueError):
        LayerConfig(provider_id=1 << 32)
    with pytest.raises(ValueError):
        LayerConfig(provider_id=-1)


def test_max_consecutive_failures_positive() -> None:
    with pytest.raises(ValueError):
        LayerConfig(max_consecutive_failures=0)
