# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/spec/derive.py

from __future__ import annotations

import hashlib
import logging
import random
import socket
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..errors import InvalidInputError
from . import constants
from .genesis import new_genesis, new_subnet_evm_genesis
from .keys import TEST_KEYS, KeyFactory, SeededKeyFactory, generate_keys
from .models import (
    DEFAULT_GENESIS_PATH,
    DEFAULT_PROFILE_DIR,
    DEFAULT_PROFILE_FREQUENCY,
    DEFAULT_PROFILE_MAX_FILES,
    AvalancheGoConfig,
    AwsResources,
    ClusterSpec,
    CorethConfig,
    InstallArtifacts,
    Machine,
)

log = logging.getLogger("avalops")


@dataclass
class DeriveOptions:
    """
    Inputs of ``derive``. Empty strings / False mean "not given" and leave
    the matching field unset.
    """
    network_name: str = "custom"
    keys_to_generate: int = constants.DEFAULT_KEYS_TO_GENERATE

    region: str = "us-west-2"

    db_backup_s3_region: str = ""
    db_backup_s3_bucket: str = ""
    db_backup_s3_key: str = ""

    nlb_acm_certificate_arn: str = ""

    install_artifacts_avalanched_bin: str = ""
    install_artifacts_avalanche_bin: str = ""
    install_artifacts_plugins_dir: str = ""

    avalanchego_log_level: str = "INFO"
    avalanchego_whitelisted_subnets: str = ""
    avalanchego_http_tls_enabled: bool = False
    avalanchego_state_sync_ids: str = ""
    avalanchego_state_sync_ips: str = ""
    avalanchego_profile_continuous_enabled: bool = False
    avalanchego_profile_continuous_freq: str = ""
    avalanchego_profile_continuous_max_files: str = ""

    coreth_metrics_enabled: bool = False
    coreth_continuous_profiler_enabled: bool = False
    coreth_offline_pruning_enabled: bool = False

    enable_subnet_evm: bool = False

    disable_instance_system_logs: bool = False
    disable_instance_system_metrics: bool = False

    spec_file_path: str = ""

    # fixes ids, bucket suffix and generated keys (tests)
    seed: Optional[int] = None
    now: Optional[datetime] = None


def rng_for(seed: Optional[int]) -> random.Random:
    return random.Random(seed) if seed is not None else random.SystemRandom()


def _random_string(n: int, rng: random.Random) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(rng.choice(alphabet) for _ in range(n))


def id_with_time(prefix: str, now: datetime, rng: random.Random) -> str:
    """e.g., 'aops-custom-20260416-x7k2'"""
    return f"{prefix}-{now:%Y%m%d}-{_random_string(4, rng)}"


def system_id(n: int, rng: random.Random) -> str:
    """Short host-derived suffix; globally-scoped names need it."""
    seed = f"{socket.gethostname()}-{rng.getrandbits(64)}"
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()[:n]


def _node_config(opts: DeriveOptions, network_id: int) -> AvalancheGoConfig:
    cfg = AvalancheGoConfig(network_id=network_id, log_level=opts.avalanchego_log_level or None)
    if cfg.is_custom_network():
        cfg.genesis = DEFAULT_GENESIS_PATH

    # only set when non-empty; the runtime rejects empty paths/values
    if opts.avalanchego_http_tls_enabled:
        cfg.http_tls_enabled = True
        cfg.http_tls_key_file = cfg.staking_tls_key_file
        cfg.http_tls_cert_file = cfg.staking_tls_cert_file
    if opts.avalanchego_state_sync_ids:
        cfg.state_sync_ids = opts.avalanchego_state_sync_ids
    if opts.avalanchego_state_sync_ips:
        cfg.state_sync_ips = opts.avalanchego_state_sync_ips
    if opts.avalanchego_profile_continuous_enabled:
        cfg.profile_continuous_enabled = True
    if opts.avalanchego_profile_continuous_freq:
        cfg.profile_continuous_freq = opts.avalanchego_profile_continuous_freq
    if opts.avalanchego_profile_continuous_max_files:
        try:
            cfg.profile_continuous_max_files = int(opts.avalanchego_profile_continuous_max_files)
        except ValueError:
            raise InvalidInputError(
                f"invalid profile continuous max files {opts.avalanchego_profile_continuous_max_files!r}",
                field="avalanchego_profile_continuous_max_files",
                value=opts.avalanchego_profile_continuous_max_files,
            ) from None
    if opts.avalanchego_whitelisted_subnets:
        cfg.whitelisted_subnets = opts.avalanchego_whitelisted_subnets
    return cfg


def _coreth_config(opts: DeriveOptions) -> CorethConfig:
    cfg = CorethConfig()
    if opts.coreth_metrics_enabled:
        cfg.metrics_enabled = True
    if opts.coreth_continuous_profiler_enabled:
        cfg.continuous_profiler_dir = DEFAULT_PROFILE_DIR
        cfg.continuous_profiler_frequency = DEFAULT_PROFILE_FREQUENCY
        cfg.continuous_profiler_max_files = DEFAULT_PROFILE_MAX_FILES
    if opts.coreth_offline_pruning_enabled:
        cfg.offline_pruning_enabled = True
    return cfg


def derive(opts: DeriveOptions, *, key_factory: Optional[KeyFactory] = None) -> ClusterSpec:
    """
    Default cluster spec for ``opts.network_name``.

    Custom networks get a genesis template, anchor nodes and
    ``keys_to_generate`` pre-funded keys. Known networks only carry their
    well-known key and no anchors.
    """
    if opts.keys_to_generate < 1:
        raise InvalidInputError(
            f"keys_to_generate must be >=1 (got {opts.keys_to_generate})",
            field="keys_to_generate",
            value=opts.keys_to_generate,
        )

    rng = rng_for(opts.seed)
    now = opts.now or datetime.now(timezone.utc)
    key_factory = key_factory or SeededKeyFactory(opts.seed)

    network_id = constants.NETWORK_NAME_TO_NETWORK_ID.get(
        opts.network_name, constants.DEFAULT_CUSTOM_NETWORK_ID
    )
    avalanchego_config = _node_config(opts, network_id)
    custom = avalanchego_config.is_custom_network()

    if opts.spec_file_path:
        cluster_id = Path(opts.spec_file_path).stem
    else:
        name = constants.NETWORK_ID_TO_NETWORK_NAME.get(network_id, "custom")
        cluster_id = id_with_time(f"{constants.ID_PREFIX}-{name}", now, rng)

    machine = Machine(
        anchor_nodes=constants.DEFAULT_MACHINE_ANCHOR_NODES if custom else None,
        non_anchor_nodes=constants.DEFAULT_MACHINE_NON_ANCHOR_NODES,
        instance_types=list(constants.DEFAULT_INSTANCE_TYPES),
    )

    if custom:
        seed_keys = generate_keys(opts.keys_to_generate, network_id, key_factory)
        genesis_template = new_genesis(network_id, seed_keys, now=now)
    else:
        # known networks have a single well-known pre-funded key
        seed_keys = generate_keys(min(opts.keys_to_generate, len(TEST_KEYS)), network_id, key_factory)
        genesis_template = None

    subnet_evm_genesis = new_subnet_evm_genesis(seed_keys) if opts.enable_subnet_evm else None

    aws_resources = AwsResources(
        region=opts.region,
        s3_bucket=f"{constants.BUCKET_PREFIX}-{now:%Y%m%d}-{system_id(10, rng)}",
    )
    if opts.db_backup_s3_region:
        aws_resources.db_backup_s3_region = opts.db_backup_s3_region
    if opts.db_backup_s3_bucket:
        aws_resources.db_backup_s3_bucket = opts.db_backup_s3_bucket
    if opts.db_backup_s3_key:
        aws_resources.db_backup_s3_key = opts.db_backup_s3_key
    if opts.nlb_acm_certificate_arn:
        aws_resources.nlb_acm_certificate_arn = opts.nlb_acm_certificate_arn
    if opts.disable_instance_system_logs:
        aws_resources.instance_system_logs = False
    if opts.disable_instance_system_metrics:
        aws_resources.instance_system_metrics = False

    install_artifacts = InstallArtifacts(
        avalanched_bin=opts.install_artifacts_avalanched_bin,
        avalanchego_bin=opts.install_artifacts_avalanche_bin,
        plugins_dir=opts.install_artifacts_plugins_dir or None,
    )

    spec = ClusterSpec(
        id=cluster_id,
        aws_resources=aws_resources,
        machine=machine,
        install_artifacts=install_artifacts,
        avalanchego_config=avalanchego_config,
        coreth_config=_coreth_config(opts),
        avalanchego_genesis_template=genesis_template,
        subnet_evm_genesis=subnet_evm_genesis,
        generated_seed_private_key_with_locked_p_chain_balance=seed_keys[0],
        generated_seed_private_keys=seed_keys[1:],
    )
    log.info(
        "derived spec %s (network_id=%d, anchors=%s, non_anchors=%d, keys=%d)",
        spec.id,
        network_id,
        machine.anchor_nodes,
        machine.non_anchor_nodes,
        len(seed_keys),
    )
    return spec
