# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/health/prober.py

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

import requests
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from ..errors import DecodeError

log = logging.getLogger("avalops")

HEALTH_PATH = "ext/health"
LIVENESS_PATH = "ext/health/liveness"

DEFAULT_TIMEOUT = 5.0

_EXTRA_FRACTION = re.compile(r"(\.\d{6})\d+")


def _rfc3339(value: Any) -> Any:
    # the node reports nanoseconds; datetime holds microseconds
    if isinstance(value, str):
        value = _EXTRA_FRACTION.sub(r"\1", value)
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
    return value


class CheckResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: Optional[Any] = None
    error: Optional[str] = None
    timestamp: datetime
    duration: Optional[int] = None
    contiguous_failures: Optional[int] = None
    time_of_first_failure: Optional[datetime] = None

    @field_validator("timestamp", "time_of_first_failure", mode="before")
    @classmethod
    def _normalize_time(cls, v):
        return _rfc3339(v)


class HealthReport(BaseModel):
    checks: Optional[Dict[str, CheckResult]] = None
    healthy: Optional[bool] = None

    @classmethod
    def parse(cls, text: Union[str, bytes]) -> "HealthReport":
        try:
            return cls.model_validate_json(text)
        except ValidationError as e:
            raise DecodeError(f"invalid health report: {e}", stage="json") from e

    def failing(self) -> List[str]:
        """Names of checks reporting an error."""
        return sorted(name for name, c in (self.checks or {}).items() if c.error)


def health_url(endpoint: str, liveness: bool = False) -> str:
    return f"{endpoint.rstrip('/')}/{LIVENESS_PATH if liveness else HEALTH_PATH}"


def _get(url: str, timeout: float) -> requests.Response:
    # nodes serve self-signed certificates
    return requests.get(url, timeout=timeout, verify=not url.startswith("https"))


async def probe(endpoint: str, liveness: bool = False, timeout: float = DEFAULT_TIMEOUT) -> HealthReport:
    """
    One GET against the node's health API. An unhealthy node still answers
    with a report (HTTP 503), so the status code is not checked.
    """
    url = health_url(endpoint, liveness)
    log.debug("[health] checking %s", url)
    resp = await asyncio.to_thread(_get, url, timeout)
    report = HealthReport.parse(resp.content)
    log.debug("[health] %s healthy=%s", url, report.healthy)
    return report


async def probe_all(
    endpoints: Sequence[str],
    liveness: bool = False,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Union[HealthReport, BaseException]]:
    """Probe every endpoint concurrently. Failures are returned, not raised."""
    results = await asyncio.gather(
        *(probe(ep, liveness=liveness, timeout=timeout) for ep in endpoints),
        return_exceptions=True,
    )
    return dict(zip(endpoints, results))
