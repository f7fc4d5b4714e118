# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/discovery/phases.py

"""
Per-node discovery phases and the precedence rule readers apply.

    anchor:      provisioning -> bootstrapping -> ready
    non-anchor:  provisioning -> ready

A node moves forward by writing its entry under the next phase's directory.
Earlier entries are never deleted, so a listing can show the same machine in
several phases at once; the most advanced one is authoritative.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from ..node.models import Node, NodeKind


class DiscoveryPhase(str, Enum):
    PROVISIONING = "provisioning"
    BOOTSTRAPPING = "bootstrapping"
    READY = "ready"

    @property
    def rank(self) -> int:
        return _RANK[self]


_RANK = {
    DiscoveryPhase.PROVISIONING: 0,
    DiscoveryPhase.BOOTSTRAPPING: 1,
    DiscoveryPhase.READY: 2,
}

_PHASES: Dict[NodeKind, Tuple[DiscoveryPhase, ...]] = {
    NodeKind.ANCHOR: (
        DiscoveryPhase.PROVISIONING,
        DiscoveryPhase.BOOTSTRAPPING,
        DiscoveryPhase.READY,
    ),
    NodeKind.NON_ANCHOR: (
        DiscoveryPhase.PROVISIONING,
        DiscoveryPhase.READY,
    ),
}


def phases_for(kind: NodeKind) -> Tuple[DiscoveryPhase, ...]:
    return _PHASES[NodeKind(kind)]


def next_phase(kind: NodeKind, phase: DiscoveryPhase) -> Optional[DiscoveryPhase]:
    """The phase after ``phase`` for this node class, or None once ready."""
    phases = phases_for(kind)
    idx = phases.index(DiscoveryPhase(phase))
    if idx + 1 < len(phases):
        return phases[idx + 1]
    return None


@dataclass(frozen=True)
class Observation:
    node: Node
    phase: DiscoveryPhase
    key: str


def resolve_current(observations: Iterable[Observation]) -> Dict[str, Observation]:
    """
    Current phase per machine id: the most advanced phase observed wins,
    regardless of listing order.
    """
    current: Dict[str, Observation] = {}
    for ob in observations:
        seen = current.get(ob.node.machine_id)
        if seen is None or ob.phase.rank > seen.phase.rank:
            current[ob.node.machine_id] = ob
    return current
