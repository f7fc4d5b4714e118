# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single invocation
    env: str          # cluster id, or "local" before one exists
    context: Optional[str]  # aws region

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_run_id() -> str:
    return str(uuid.uuid4())


def new_ctx(env: str, context: Optional[str], run_id: Optional[str] = None) -> Dict[str, Any]:
    """Event context; ts is fresh per call, run_id is the invocation's when given."""
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or new_run_id(),
        "env": env,
        "context": context,
    }


# ---------------------------------------------------------------------
# Stack lifecycle (CloudFormation)
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class StackCreateRequested(BaseEvent):
    name: str

@dataclass(frozen=True)
class StackStatusUpdate(BaseEvent):
    name: str
    status: str

@dataclass(frozen=True)
class StackReady(BaseEvent):
    name: str
    status: str
    outputs: Dict[str, str]

@dataclass(frozen=True)
class StackTimedOut(BaseEvent):
    name: str
    last_status: Optional[str]
    timeout_s: int

@dataclass(frozen=True)
class StackFailed(BaseEvent):
    name: str
    error: str

@dataclass(frozen=True)
class StackDeleteRequested(BaseEvent):
    name: str


# ---------------------------------------------------------------------
# Spec document
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class SpecSynced(BaseEvent):
    path: str


# ---------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class NodePublished(BaseEvent):
    machine_id: str
    kind: str
    phase: str
    key: str

@dataclass(frozen=True)
class NodesDiscovered(BaseEvent):
    phases: Dict[str, str]     # machine_id -> current phase

@dataclass(frozen=True)
class NodeHealthChecked(BaseEvent):
    machine_id: str
    endpoint: str
    healthy: bool
    error: Optional[str] = None

@dataclass(frozen=True)
class ClusterReady(BaseEvent):
    machine_ids: List[str]
    http_rpc: Optional[str] = None
