# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/storage/namespace.py

"""
Key layout of the shared object store, rooted at ``{cluster_id}/``.

MUST be kept in sync with the instance-role policy in the infrastructure
templates and with every booted machine: any change to a template here
breaks cross-machine discovery.
"""

from __future__ import annotations

import posixpath
from enum import Enum
from typing import Dict, Optional

from ..errors import DecodeError, InvalidInputError, ParseError
from ..node import codec
from ..node.models import Node, NodeKind
from ..discovery.phases import DiscoveryPhase, phases_for

# separates machine id and token in a discovery entry filename
SEPARATOR = "_"
ENTRY_SUFFIX = ".yaml"


class Purpose(str, Enum):
    CONFIG_FILE = "config_file"
    DEV_MACHINE_CONFIG_FILE = "dev_machine_config_file"
    EC2_ACCESS_KEY_COMPRESSED_ENCRYPTED = "ec2_access_key_compressed_encrypted"

    # valid genesis with initial stakers; only written once anchors are ready
    GENESIS_FILE = "genesis_file"

    AVALANCHED_BIN = "avalanched_bin"
    AVALANCHE_BIN_COMPRESSED = "avalanche_bin_compressed"
    PLUGINS_DIR = "plugins_dir"

    PKI_KEY_DIR = "pki_key_dir"

    DISCOVER_PROVISIONING_ANCHOR_NODES_DIR = "discover_provisioning_anchor_nodes_dir"
    DISCOVER_PROVISIONING_ANCHOR_NODE = "discover_provisioning_anchor_node"
    DISCOVER_PROVISIONING_NON_ANCHOR_NODES_DIR = "discover_provisioning_non_anchor_nodes_dir"
    DISCOVER_PROVISIONING_NON_ANCHOR_NODE = "discover_provisioning_non_anchor_node"

    DISCOVER_BOOTSTRAPPING_ANCHOR_NODES_DIR = "discover_bootstrapping_anchor_nodes_dir"
    DISCOVER_BOOTSTRAPPING_ANCHOR_NODE = "discover_bootstrapping_anchor_node"

    DISCOVER_READY_ANCHOR_NODES_DIR = "discover_ready_anchor_nodes_dir"
    DISCOVER_READY_ANCHOR_NODE = "discover_ready_anchor_node"
    DISCOVER_READY_NON_ANCHOR_NODES_DIR = "discover_ready_non_anchor_nodes_dir"
    DISCOVER_READY_NON_ANCHOR_NODE = "discover_ready_non_anchor_node"

    BACKUPS_DIR = "backups_dir"

    # a recently modified event file tells agents to pull the artifacts below
    EVENTS_UPDATE_ARTIFACTS_EVENT = "events_update_artifacts_event"
    EVENTS_UPDATE_ARTIFACTS_INSTALL_DIR_AVALANCHE_BIN_COMPRESSED = (
        "events_update_artifacts_install_dir_avalanche_bin_compressed"
    )
    EVENTS_UPDATE_ARTIFACTS_INSTALL_DIR_PLUGINS_DIR = "events_update_artifacts_install_dir_plugins_dir"


_TEMPLATES: Dict[Purpose, str] = {
    Purpose.CONFIG_FILE: "{id}/avalops.config.yaml",
    Purpose.DEV_MACHINE_CONFIG_FILE: "{id}/dev-machine.config.yaml",
    Purpose.EC2_ACCESS_KEY_COMPRESSED_ENCRYPTED: "{id}/ec2-access-key.zstd.seal_aes_256.encrypted",
    Purpose.GENESIS_FILE: "{id}/genesis.json",
    Purpose.AVALANCHED_BIN: "{id}/install/avalanched",
    Purpose.AVALANCHE_BIN_COMPRESSED: "{id}/install/avalanche.zstd",
    Purpose.PLUGINS_DIR: "{id}/install/plugins",
    Purpose.PKI_KEY_DIR: "{id}/pki",
    Purpose.DISCOVER_PROVISIONING_ANCHOR_NODES_DIR: "{id}/discover/provisioning-anchor-nodes",
    Purpose.DISCOVER_PROVISIONING_NON_ANCHOR_NODES_DIR: "{id}/discover/provisioning-non-anchor-nodes",
    Purpose.DISCOVER_BOOTSTRAPPING_ANCHOR_NODES_DIR: "{id}/discover/bootstrapping-anchor-nodes",
    Purpose.DISCOVER_READY_ANCHOR_NODES_DIR: "{id}/discover/ready-anchor-nodes",
    Purpose.DISCOVER_READY_NON_ANCHOR_NODES_DIR: "{id}/discover/ready-non-anchor-nodes",
    Purpose.BACKUPS_DIR: "{id}/backups",
    Purpose.EVENTS_UPDATE_ARTIFACTS_EVENT: "{id}/events/update-artifacts/event",
    Purpose.EVENTS_UPDATE_ARTIFACTS_INSTALL_DIR_AVALANCHE_BIN_COMPRESSED: (
        "{id}/events/update-artifacts/install/avalanche.zstd"
    ),
    Purpose.EVENTS_UPDATE_ARTIFACTS_INSTALL_DIR_PLUGINS_DIR: "{id}/events/update-artifacts/install/plugins",
}

# per-node entry purpose -> the directory it lives in
_NODE_ENTRY_DIRS: Dict[Purpose, Purpose] = {
    Purpose.DISCOVER_PROVISIONING_ANCHOR_NODE: Purpose.DISCOVER_PROVISIONING_ANCHOR_NODES_DIR,
    Purpose.DISCOVER_PROVISIONING_NON_ANCHOR_NODE: Purpose.DISCOVER_PROVISIONING_NON_ANCHOR_NODES_DIR,
    Purpose.DISCOVER_BOOTSTRAPPING_ANCHOR_NODE: Purpose.DISCOVER_BOOTSTRAPPING_ANCHOR_NODES_DIR,
    Purpose.DISCOVER_READY_ANCHOR_NODE: Purpose.DISCOVER_READY_ANCHOR_NODES_DIR,
    Purpose.DISCOVER_READY_NON_ANCHOR_NODE: Purpose.DISCOVER_READY_NON_ANCHOR_NODES_DIR,
}

_DISCOVER_DIRS: Dict[tuple, Purpose] = {
    (NodeKind.ANCHOR, DiscoveryPhase.PROVISIONING): Purpose.DISCOVER_PROVISIONING_ANCHOR_NODES_DIR,
    (NodeKind.ANCHOR, DiscoveryPhase.BOOTSTRAPPING): Purpose.DISCOVER_BOOTSTRAPPING_ANCHOR_NODES_DIR,
    (NodeKind.ANCHOR, DiscoveryPhase.READY): Purpose.DISCOVER_READY_ANCHOR_NODES_DIR,
    (NodeKind.NON_ANCHOR, DiscoveryPhase.PROVISIONING): Purpose.DISCOVER_PROVISIONING_NON_ANCHOR_NODES_DIR,
    (NodeKind.NON_ANCHOR, DiscoveryPhase.READY): Purpose.DISCOVER_READY_NON_ANCHOR_NODES_DIR,
}


def is_node_entry(purpose: Purpose) -> bool:
    return purpose in _NODE_ENTRY_DIRS


def path_for(purpose: Purpose, cluster_id: str, node: Optional[Node] = None) -> str:
    """
    Canonical storage key for ``purpose`` in cluster ``cluster_id``.

    Per-node discovery purposes require ``node`` and produce
    ``{dir}/{machine_id}_{token}.yaml``; every other purpose rejects it.
    """
    if not cluster_id:
        raise InvalidInputError("cluster id cannot be empty", field="cluster_id", value=cluster_id)

    purpose = Purpose(purpose)
    if purpose in _NODE_ENTRY_DIRS:
        if node is None:
            raise InvalidInputError(f"{purpose.value} requires a node", field="node", value=None)
        bad = [c for c in (SEPARATOR, "/") if c in node.machine_id]
        if bad:
            raise InvalidInputError(
                f"machine id {node.machine_id!r} must not contain {bad[0]!r}",
                field="machine_id",
                value=node.machine_id,
            )
        directory = _TEMPLATES[_NODE_ENTRY_DIRS[purpose]].format(id=cluster_id)
        return f"{directory}/{node.machine_id}{SEPARATOR}{codec.encode(node)}{ENTRY_SUFFIX}"

    if node is not None:
        raise InvalidInputError(f"{purpose.value} does not take a node", field="node", value=node)
    return _TEMPLATES[purpose].format(id=cluster_id)


def parse_node(path: str) -> Node:
    """Recover the node identity from a per-node discovery key."""
    file_name = posixpath.basename(path)
    if not file_name:
        raise ParseError(f"storage path {path!r} has no file name", path=path)

    splits = file_name.split(SEPARATOR)
    if len(splits) != 2:
        raise ParseError(
            f"file name {file_name} of storage path {path} expected two splits "
            f"for {SEPARATOR!r} (got {len(splits)})",
            path=path,
        )
    machine_id, token = splits
    if not token.endswith(ENTRY_SUFFIX):
        raise ParseError(f"file name {file_name} is missing {ENTRY_SUFFIX}", path=path)
    token = token[: -len(ENTRY_SUFFIX)]

    try:
        node = codec.decode(token)
    except DecodeError as e:
        raise ParseError(f"failed to decode node from {path}: {e}", path=path) from e

    if node.machine_id != machine_id:
        raise ParseError(
            f"machine id {machine_id} in file name does not match encoded {node.machine_id}",
            path=path,
        )
    return node


def discover_dir(kind: NodeKind, phase: DiscoveryPhase) -> Purpose:
    try:
        return _DISCOVER_DIRS[(NodeKind(kind), DiscoveryPhase(phase))]
    except KeyError:
        raise InvalidInputError(
            f"{kind} nodes have no {phase} phase (valid: {[p.value for p in phases_for(kind)]})",
            field="phase",
            value=phase,
        ) from None


def discover_node(kind: NodeKind, phase: DiscoveryPhase) -> Purpose:
    directory = discover_dir(kind, phase)
    return next(p for p, d in _NODE_ENTRY_DIRS.items() if d is directory)
