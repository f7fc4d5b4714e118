# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avalops/cli/app.py
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional

import typer

from avalops.aws.cloudformation import CloudFormationManager
from avalops.aws.provisioner import ClusterProvisioner, TemplateSet
from avalops.config.settings import Settings, load_settings
from avalops.discovery.protocol import snapshot
from avalops.discovery.watcher import wait_for_ready
from avalops.errors import AvalopsError, InvalidInputError
from avalops.health.prober import HealthReport, probe_all
from avalops.logging.log import init_logging
from avalops.observers.dispatcher import EventBus
from avalops.observers.jsonfile import JsonFileObserver
from avalops.observers.logger import LoggerObserver
from avalops.spec import store
from avalops.spec.derive import DeriveOptions, derive
from avalops.spec.validate import validate as validate_spec
from avalops.storage.s3 import S3Store


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Avalanche validator fleet provisioning CLI")


def _bus(settings: Settings, debug: bool) -> EventBus:
    logger, run_id, log_path = init_logging(base_dir=settings.log_dir, verbose=debug)
    typer.echo(f"  Run ID   : {run_id}")
    typer.echo(f"  Log file : {log_path}")
    return EventBus(
        observers=[
            LoggerObserver(logger),
            JsonFileObserver(log_path.with_suffix(".jsonl")),
        ],
        run_id=run_id,
    )


def _fail(e: Exception) -> None:
    typer.secho(f"error: {e}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _load_valid(spec_file: Path):
    spec = store.load(spec_file)
    validate_spec(spec)
    return spec


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command("default-spec")
def default_spec(
    network_name: str = typer.Option("custom", "--network-name"),
    keys_to_generate: int = typer.Option(5, "--keys-to-generate"),
    region: Optional[str] = typer.Option(None, "--region"),
    db_backup_s3_region: str = typer.Option("", "--db-backup-s3-region"),
    db_backup_s3_bucket: str = typer.Option("", "--db-backup-s3-bucket"),
    db_backup_s3_key: str = typer.Option("", "--db-backup-s3-key"),
    nlb_acm_certificate_arn: str = typer.Option("", "--nlb-acm-certificate-arn"),
    avalanched_bin: str = typer.Option("", "--install-artifacts-avalanched-bin"),
    avalanche_bin: str = typer.Option("", "--install-artifacts-avalanche-bin"),
    plugins_dir: str = typer.Option("", "--install-artifacts-plugins-dir"),
    log_level: str = typer.Option("INFO", "--avalanchego-log-level"),
    whitelisted_subnets: str = typer.Option("", "--avalanchego-whitelisted-subnets"),
    http_tls_enabled: bool = typer.Option(False, "--avalanchego-http-tls-enabled"),
    state_sync_ids: str = typer.Option("", "--avalanchego-state-sync-ids"),
    state_sync_ips: str = typer.Option("", "--avalanchego-state-sync-ips"),
    profile_continuous_enabled: bool = typer.Option(False, "--avalanchego-profile-continuous-enabled"),
    profile_continuous_freq: str = typer.Option("", "--avalanchego-profile-continuous-freq"),
    profile_continuous_max_files: str = typer.Option("", "--avalanchego-profile-continuous-max-files"),
    coreth_metrics_enabled: bool = typer.Option(False, "--coreth-metrics-enabled"),
    coreth_continuous_profiler_enabled: bool = typer.Option(False, "--coreth-continuous-profiler-enabled"),
    coreth_offline_pruning_enabled: bool = typer.Option(False, "--coreth-offline-pruning-enabled"),
    enable_subnet_evm: bool = typer.Option(False, "--enable-subnet-evm"),
    disable_instance_system_logs: bool = typer.Option(False, "--disable-instance-system-logs"),
    disable_instance_system_metrics: bool = typer.Option(False, "--disable-instance-system-metrics"),
    spec_file_path: str = typer.Option("", "--spec-file-path", help="Where to write the spec; its stem becomes the cluster id"),
):
    """Write a default cluster spec."""
    settings = load_settings()
    opts = DeriveOptions(
        network_name=network_name,
        keys_to_generate=keys_to_generate,
        region=region or settings.region,
        db_backup_s3_region=db_backup_s3_region,
        db_backup_s3_bucket=db_backup_s3_bucket,
        db_backup_s3_key=db_backup_s3_key,
        nlb_acm_certificate_arn=nlb_acm_certificate_arn,
        install_artifacts_avalanched_bin=avalanched_bin,
        install_artifacts_avalanche_bin=avalanche_bin,
        install_artifacts_plugins_dir=plugins_dir,
        avalanchego_log_level=log_level,
        avalanchego_whitelisted_subnets=whitelisted_subnets,
        avalanchego_http_tls_enabled=http_tls_enabled,
        avalanchego_state_sync_ids=state_sync_ids,
        avalanchego_state_sync_ips=state_sync_ips,
        avalanchego_profile_continuous_enabled=profile_continuous_enabled,
        avalanchego_profile_continuous_freq=profile_continuous_freq,
        avalanchego_profile_continuous_max_files=profile_continuous_max_files,
        coreth_metrics_enabled=coreth_metrics_enabled,
        coreth_continuous_profiler_enabled=coreth_continuous_profiler_enabled,
        coreth_offline_pruning_enabled=coreth_offline_pruning_enabled,
        enable_subnet_evm=enable_subnet_evm,
        disable_instance_system_logs=disable_instance_system_logs,
        disable_instance_system_metrics=disable_instance_system_metrics,
        spec_file_path=spec_file_path,
    )
    try:
        spec = derive(opts)
        path = Path(spec_file_path) if spec_file_path else Path.cwd() / f"{spec.id}.yaml"
        store.sync(spec, path)
    except AvalopsError as e:
        _fail(e)

    typer.secho(f"Saved spec: {path}", bold=True)
    typer.echo(f"  Cluster id : {spec.id}")
    typer.echo(f"  Network id : {spec.avalanchego_config.network_id}")


@app.command()
def validate(spec_file: Path = typer.Argument(..., help="Cluster spec YAML")):
    """Load and validate a cluster spec."""
    try:
        spec = _load_valid(spec_file)
    except AvalopsError as e:
        _fail(e)
    typer.secho(f"{spec_file}: OK ({spec.id})", fg=typer.colors.GREEN)


@app.command()
def apply(
    spec_file: Path = typer.Argument(..., help="Cluster spec YAML"),
    templates: Path = typer.Option(..., "--templates", help="Directory with one CloudFormation template per stack"),
    wait: bool = typer.Option(False, "--wait", help="Wait for every node to be ready and healthy"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Create the cluster's stacks in dependency order."""
    settings = load_settings()
    bus = _bus(settings, debug)

    async def _run():
        spec = _load_valid(spec_file)
        cfn = CloudFormationManager(
            region=spec.aws_resources.region,
            profile=settings.aws_profile,
            bus=bus,
            env=spec.id,
        )
        prov = ClusterProvisioner(
            spec,
            spec_file,
            cfn,
            TemplateSet.from_dir(templates),
            bus=bus,
            timeout=settings.stack_timeout_s,
            interval=settings.poll_interval_s,
        )
        await prov.apply()
        if wait:
            s3 = S3Store(spec.aws_resources.s3_bucket, region=spec.aws_resources.region, profile=settings.aws_profile)
            await wait_for_ready(
                s3,
                spec,
                timeout=settings.stack_timeout_s,
                interval=settings.poll_interval_s,
                bus=bus,
            )
            store.sync(spec, spec_file)
        return spec

    try:
        spec = asyncio.run(_run())
    except AvalopsError as e:
        _fail(e)

    typer.secho("Cluster applied", bold=True)
    if spec.endpoints and spec.endpoints.http_rpc:
        typer.echo(f"  HTTP RPC : {spec.endpoints.http_rpc}")


@app.command()
def delete(
    spec_file: Path = typer.Argument(..., help="Cluster spec YAML"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Delete the cluster's stacks in reverse order."""
    settings = load_settings()
    bus = _bus(settings, debug)

    async def _run():
        spec = store.load(spec_file)
        cfn = CloudFormationManager(
            region=spec.aws_resources.region if spec.aws_resources else settings.region,
            profile=settings.aws_profile,
            bus=bus,
            env=spec.id,
        )
        prov = ClusterProvisioner(
            spec,
            spec_file,
            cfn,
            TemplateSet(),
            bus=bus,
            timeout=settings.stack_timeout_s,
            interval=settings.poll_interval_s,
        )
        await prov.delete()

    try:
        asyncio.run(_run())
    except AvalopsError as e:
        _fail(e)
    typer.secho("Cluster stacks deleted", bold=True)


@app.command()
def discover(spec_file: Path = typer.Argument(..., help="Cluster spec YAML")):
    """Show the current discovery phase of every machine."""
    settings = load_settings()
    try:
        spec = store.load(spec_file)
        if spec.aws_resources is None:
            raise InvalidInputError("'aws_resources' is required to discover nodes", field="aws_resources", value=None)
        s3 = S3Store(spec.aws_resources.s3_bucket, region=spec.aws_resources.region, profile=settings.aws_profile)
        current = asyncio.run(snapshot(s3, spec.id))
    except AvalopsError as e:
        _fail(e)

    if not current:
        typer.echo("no machines published yet")
        return
    for machine_id in sorted(current):
        ob = current[machine_id]
        typer.echo(f"{machine_id:<22} {ob.node.kind.value:<11} {ob.phase.value:<14} {ob.node.http_endpoint}")


@app.command()
def health(
    endpoints: List[str] = typer.Argument(..., help="Node HTTP endpoints, e.g. http://1.2.3.4:9650"),
    liveness: bool = typer.Option(False, "--liveness"),
):
    """Probe node health endpoints concurrently."""
    settings = load_settings()
    results = asyncio.run(probe_all(endpoints, liveness=liveness, timeout=settings.health_timeout_s))

    unhealthy = 0
    for ep, res in results.items():
        if isinstance(res, HealthReport) and res.healthy:
            typer.secho(f"{ep}: healthy", fg=typer.colors.GREEN)
            continue
        unhealthy += 1
        detail = ", ".join(res.failing()) if isinstance(res, HealthReport) else str(res)
        typer.secho(f"{ep}: unhealthy ({detail})", fg=typer.colors.RED)

    if unhealthy:
        raise typer.Exit(code=1)
