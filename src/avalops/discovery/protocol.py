# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/discovery/protocol.py

"""
Storage-mediated discovery.

There is no coordinator and no lock. Each machine writes only keys addressed
by its own machine id, and readers only see committed objects, so the object
store listing is the whole protocol. Listings are eventually consistent: a
reader may miss a just-written entry on one poll and see it on the next.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

import yaml

from ..node.models import Node, NodeKind
from ..observers.dispatcher import EventBus
from ..observers.events import NodePublished, NodesDiscovered, new_ctx
from ..storage.namespace import discover_dir, discover_node, parse_node, path_for
from ..storage.s3 import ObjectStore
from .phases import DiscoveryPhase, Observation, phases_for, resolve_current

log = logging.getLogger("avalops")


async def publish(
    store: ObjectStore,
    cluster_id: str,
    node: Node,
    phase: DiscoveryPhase,
    *,
    bus: Optional[EventBus] = None,
) -> str:
    """
    Announce that ``node`` reached ``phase``. Earlier phase entries are kept.
    Returns the key written.
    """
    key = path_for(discover_node(node.kind, phase), cluster_id, node)
    body = yaml.safe_dump(node.to_dict(), sort_keys=True).encode("utf-8")
    await asyncio.to_thread(store.put_bytes, key, body)
    log.info("[discover] published %s (%s) as %s", node.machine_id, node.kind.value, phase.value)

    if bus is not None:
        bus.emit(
            NodePublished(
                machine_id=node.machine_id,
                kind=node.kind.value,
                phase=phase.value,
                key=key,
                **new_ctx(env=cluster_id, context=None, run_id=bus.run_id),
            )
        )
    return key


async def list_nodes(
    store: ObjectStore,
    cluster_id: str,
    kind: NodeKind,
    phase: DiscoveryPhase,
) -> List[Observation]:
    """
    Nodes listed under one (class, phase) directory.

    A key that fails to parse raises ParseError. A corrupt entry is a
    protocol break and must not look like an empty directory.
    """
    prefix = path_for(discover_dir(kind, phase), cluster_id) + "/"
    keys = await asyncio.to_thread(store.list_keys, prefix)

    observations: List[Observation] = []
    for key in sorted(keys):
        if key.endswith("/"):
            continue
        observations.append(Observation(node=parse_node(key), phase=DiscoveryPhase(phase), key=key))
    return observations


async def snapshot(
    store: ObjectStore,
    cluster_id: str,
    *,
    bus: Optional[EventBus] = None,
) -> Dict[str, Observation]:
    """
    List every discovery directory of the cluster concurrently and resolve
    each machine to its most advanced phase.
    """
    pairs = [(kind, phase) for kind in NodeKind for phase in phases_for(kind)]
    listings = await asyncio.gather(
        *(list_nodes(store, cluster_id, kind, phase) for kind, phase in pairs)
    )
    current = resolve_current(ob for listing in listings for ob in listing)

    log.debug("[discover] %s: %d machines visible", cluster_id, len(current))
    if bus is not None:
        bus.emit(
            NodesDiscovered(
                phases={mid: ob.phase.value for mid, ob in current.items()},
                **new_ctx(env=cluster_id, context=None, run_id=bus.run_id),
            )
        )
    return current


def nodes_in_phase(
    current: Dict[str, Observation],
    kind: NodeKind,
    phase: DiscoveryPhase,
) -> List[Node]:
    return sorted(
        (ob.node for ob in current.values() if ob.node.kind == kind and ob.phase == phase),
        key=lambda n: n.machine_id,
    )
