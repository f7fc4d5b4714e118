# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/spec/constants.py

from typing import Dict

NETWORK_NAME_TO_NETWORK_ID: Dict[str, int] = {
    "mainnet": 1,
    "cascade": 2,
    "denali": 3,
    "everest": 4,
    "fuji": 5,
    "testnet": 5,
    "local": 12345,
}

NETWORK_ID_TO_NETWORK_NAME: Dict[int, str] = {
    1: "mainnet",
    2: "cascade",
    3: "denali",
    4: "everest",
    5: "fuji",
    12345: "local",
}

# bech32 human-readable part per network id
NETWORK_ID_TO_HRP: Dict[int, str] = {
    1: "avax",
    2: "cascade",
    3: "denali",
    4: "everest",
    5: "fuji",
    12345: "local",
}
FALLBACK_HRP = "custom"

DEFAULT_CUSTOM_NETWORK_ID = 1000000

DEFAULT_KEYS_TO_GENERATE = 5

# anchor nodes only exist on custom networks
DEFAULT_MACHINE_ANCHOR_NODES = 2
MIN_MACHINE_ANCHOR_NODES = 1
MAX_MACHINE_ANCHOR_NODES = 10

DEFAULT_MACHINE_NON_ANCHOR_NODES = 2
MIN_MACHINE_NON_ANCHOR_NODES = 1
MAX_MACHINE_NON_ANCHOR_NODES = 200

DEFAULT_INSTANCE_TYPES = ["c6a.large", "m6a.large", "m5.large", "c5.large"]

# some AWS resources cap tags at 32 characters; leave room for suffixes
MAX_CLUSTER_ID_LENGTH = 28

ID_PREFIX = "aops"
BUCKET_PREFIX = "avalanche-ops"


def is_custom_network(network_id: int) -> bool:
    return network_id not in NETWORK_ID_TO_NETWORK_NAME


def hrp(network_id: int) -> str:
    return NETWORK_ID_TO_HRP.get(network_id, FALLBACK_HRP)
