# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/discovery/watcher.py

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

import requests

from ..errors import TimedOutError
from ..health.prober import HealthReport, probe
from ..node.models import Node, NodeKind
from ..observers.dispatcher import EventBus
from ..observers.events import ClusterReady, NodeHealthChecked, new_ctx
from ..spec.models import ClusterSpec, Endpoints
from ..storage.s3 import ObjectStore
from .phases import DiscoveryPhase
from .protocol import nodes_in_phase, snapshot

log = logging.getLogger("avalops")

Prober = Callable[[str], Awaitable[HealthReport]]


async def _healthy(node: Node, prober: Prober, bus: Optional[EventBus], env: str) -> bool:
    error: Optional[str] = None
    try:
        report = await prober(node.http_endpoint)
        ok = bool(report.healthy)
        if not ok:
            error = ",".join(report.failing()) or "unhealthy"
    except (requests.RequestException, OSError) as e:
        # an unreachable node is simply not ready yet; a malformed report
        # (DecodeError) propagates
        ok = False
        error = str(e)
        log.debug("[watch] probe %s failed: %s", node.http_endpoint, e)

    if bus is not None:
        bus.emit(
            NodeHealthChecked(
                machine_id=node.machine_id,
                endpoint=node.http_endpoint,
                healthy=ok,
                error=error,
                **new_ctx(env=env, context=None, run_id=bus.run_id),
            )
        )
    return ok


async def wait_for_ready(
    store: ObjectStore,
    spec: ClusterSpec,
    *,
    timeout: float,
    interval: float,
    prober: Prober = probe,
    bus: Optional[EventBus] = None,
) -> List[Node]:
    """
    Wait until every expected machine is listed as ready and answers its
    health check. Records the ready nodes and the cluster endpoints on
    ``spec`` and returns the nodes, anchors first.
    """
    want_anchor = spec.machine.anchor_nodes or 0
    want_non_anchor = spec.machine.non_anchor_nodes

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    seen = 0

    log.info(
        "[watch] waiting for %d anchor / %d non-anchor nodes of %s",
        want_anchor,
        want_non_anchor,
        spec.id,
    )

    while True:
        current = await snapshot(store, spec.id, bus=bus)
        anchors = nodes_in_phase(current, NodeKind.ANCHOR, DiscoveryPhase.READY)
        non_anchors = nodes_in_phase(current, NodeKind.NON_ANCHOR, DiscoveryPhase.READY)
        ready = anchors + non_anchors
        seen = len(ready)

        if len(anchors) >= want_anchor and len(non_anchors) >= want_non_anchor:
            checks = await asyncio.gather(*(_healthy(n, prober, bus, spec.id) for n in ready))
            if all(checks):
                spec.current_nodes = ready
                if ready:
                    spec.endpoints = Endpoints.from_http_rpc(ready[0].http_endpoint)
                log.info("[watch] %s: %d nodes ready", spec.id, len(ready))
                if bus is not None:
                    bus.emit(
                        ClusterReady(
                            machine_ids=[n.machine_id for n in ready],
                            http_rpc=spec.endpoints.http_rpc if spec.endpoints else None,
                            **new_ctx(env=spec.id, context=None, run_id=bus.run_id),
                        )
                    )
                return ready
        else:
            log.info(
                "[watch] %s: %d/%d anchor, %d/%d non-anchor ready",
                spec.id,
                len(anchors),
                want_anchor,
                len(non_anchors),
                want_non_anchor,
            )

        remaining = deadline - loop.time()
        if remaining <= 0:
            raise TimedOutError(
                f"cluster {spec.id} not ready after {timeout} seconds ({seen} nodes ready)",
                name=spec.id,
                last_status=seen,
            )
        await asyncio.sleep(min(interval, remaining))
