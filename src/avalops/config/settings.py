# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/config/settings.py

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..errors import InvalidInputError


@dataclass(frozen=True)
class Settings:
    aws_profile: Optional[str]
    region: str
    log_dir: Optional[Path]
    poll_interval_s: float
    stack_timeout_s: float
    health_timeout_s: float


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise InvalidInputError(f"{name} must be a number (got {raw!r})", field=name, value=raw) from None
    if value <= 0:
        raise InvalidInputError(f"{name} must be >0 (got {raw!r})", field=name, value=raw)
    return value


def load_settings() -> Settings:
    log_dir = os.getenv("AVALOPS_LOG_DIR")
    return Settings(
        aws_profile=os.getenv("AVALOPS_AWS_PROFILE") or None,
        region=os.getenv("AVALOPS_REGION", "us-west-2"),
        log_dir=Path(log_dir).expanduser() if log_dir else None,
        poll_interval_s=_float("AVALOPS_POLL_INTERVAL_SECONDS", 20),
        stack_timeout_s=_float("AVALOPS_STACK_TIMEOUT_SECONDS", 900),
        health_timeout_s=_float("AVALOPS_HEALTH_TIMEOUT_SECONDS", 5),
    )
