# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/node/models.py

from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict

from ..errors import InvalidInputError


class NodeKind(str, Enum):
    ANCHOR = "anchor"
    NON_ANCHOR = "non-anchor"


@dataclass(frozen=True)
class Node:
    """
    Identity a booted machine publishes to shared storage.
    Owned by the publishing machine; readers only reference it.
    """
    kind: NodeKind
    machine_id: str        # cloud instance id (e.g., 'i-0abc...')
    node_id: str           # issued by the node's consensus layer (e.g., 'NodeID-...')
    public_ip: str
    http_endpoint: str     # e.g., 'http://1.2.3.4:9650'

    @classmethod
    def new(
        cls,
        kind: NodeKind,
        machine_id: str,
        node_id: str,
        public_ip: str,
        scheme: str = "http",
        port: int = 9650,
    ) -> "Node":
        return cls(
            kind=NodeKind(kind),
            machine_id=machine_id,
            node_id=node_id,
            public_ip=public_ip,
            http_endpoint=f"{scheme}://{public_ip}:{port}",
        )

    def to_dict(self) -> Dict[str, str]:
        d = asdict(self)
        d["kind"] = self.kind.value
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        try:
            return cls(
                kind=NodeKind(data["kind"]),
                machine_id=str(data["machine_id"]),
                node_id=str(data["node_id"]),
                public_ip=str(data["public_ip"]),
                http_endpoint=str(data["http_endpoint"]),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidInputError(f"invalid node record: {e}", field="node", value=data) from e
