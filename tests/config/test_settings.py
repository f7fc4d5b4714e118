from pathlib import Path

import pytest

from avalops.config.settings import load_settings
from avalops.errors import InvalidInputError

ENV = (
    "AVALOPS_AWS_PROFILE",
    "AVALOPS_REGION",
    "AVALOPS_LOG_DIR",
    "AVALOPS_POLL_INTERVAL_SECONDS",
    "AVALOPS_STACK_TIMEOUT_SECONDS",
    "AVALOPS_HEALTH_TIMEOUT_SECONDS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    s = load_settings()
    assert s.aws_profile is None
    assert s.region == "us-west-2"
    assert s.log_dir is None
    assert (s.poll_interval_s, s.stack_timeout_s, s.health_timeout_s) == (20, 900, 5)


def test_overrides(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("AVALOPS_AWS_PROFILE", "ops")
    monkeypatch.setenv("AVALOPS_REGION", "eu-west-1")
    monkeypatch.setenv("AVALOPS_LOG_DIR", str(tmp_path))
    monkeypatch.setenv("AVALOPS_POLL_INTERVAL_SECONDS", "2.5")
    s = load_settings()
    assert s.aws_profile == "ops"
    assert s.region == "eu-west-1"
    assert s.log_dir == tmp_path
    assert s.poll_interval_s == 2.5


@pytest.mark.parametrize("raw", ["soon", "0", "-1"])
def test_bad_numbers(monkeypatch, raw):
    monkeypatch.setenv("AVALOPS_STACK_TIMEOUT_SECONDS", raw)
    with pytest.raises(InvalidInputError) as ei:
        load_settings()
    assert ei.value.field == "AVALOPS_STACK_TIMEOUT_SECONDS"
