# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/cli/app.py
from __future__ import annotations

import contextlib
import logging
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

import typer

from besu_stack.chart.builder import build_chart, write_manifests
from besu_stack.config.models import (
    CloudProvider,
    Environment,
    IngressMode,
    InstallOptions,
    PerformanceTier,
    SupportComponent,
    SupportOptions,
    UninstallOptions,
)
from besu_stack.config.settings import Settings, load_settings, load_vault_settings
from besu_stack.errors import BesuStackError
from besu_stack.helm.cli_runner import HelmCliRunner
from besu_stack.helm.errors import HelmError
from besu_stack.keys.fetch import exec_node, fetch_key
from besu_stack.kube.kubectl import KubectlError, KubectlRunner
from besu_stack.kube.discovery import KubectlDiscovery, StaticDiscovery
from besu_stack.lifecycle.installer import Installer
from besu_stack.lifecycle.support import SupportInstaller, SupportTeardown
from besu_stack.lifecycle.uninstaller import Uninstaller
from besu_stack.logging.log import init_logging
from besu_stack.observers.console import ConsoleObserver
from besu_stack.observers.dispatcher import EventBus, RunEvents
from besu_stack.observers.jsonfile import JsonFileObserver
from besu_stack.observers.logger import LoggerObserver
from besu_stack.utils.execution import ExecutionContext

log = logging.getLogger("besu_stack")

# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Hyperledger Besu validator network CLI", no_args_is_help=True)


@dataclass
class Runtime:
    settings: Settings
    events: RunEvents
    run_id: str
    log_path: Path


def _runtime(command: str, *, env: str, debug: bool, context: Optional[str] = None) -> Runtime:
    settings = load_settings()
    logger, run_id, log_path = init_logging(base_dir=settings.log_dir, command=command, verbose=debug)

    bus = EventBus(
        observers=[
            ConsoleObserver(),
            LoggerObserver(logger),
            JsonFileObserver.for_log(log_path),
        ]
    )
    events = RunEvents(bus, env=env, context=context, run_id=run_id)
    return Runtime(settings=settings, events=events, run_id=run_id, log_path=log_path)


@contextlib.contextmanager
def _failures_exit() -> Iterator[None]:
    """Known failures become one logged line and exit code 1."""
    try:
        yield
    except (BesuStackError, HelmError, KubectlError) as e:
        log.error("%s", e)
        raise typer.Exit(code=1)


def _install_options(
    environment: Environment,
    namespace: str,
    release: str,
    openshift: bool,
    cloud: Optional[CloudProvider],
    performance: PerformanceTier,
    tls: bool,
    ingress: IngressMode,
    values_file: Optional[Path],
    sets: Optional[List[str]],
    dry_run: bool = False,
    upgrade: bool = False,
) -> InstallOptions:
    return InstallOptions(
        environment=environment,
        namespace=namespace,
        release=release,
        openshift=openshift,
        cloud=cloud,
        performance=performance,
        cert_manager=tls,
        ingress=ingress,
        values_file=values_file,
        sets=list(sets or []),
        dry_run=dry_run,
        upgrade=upgrade,
    )


# ------------------------------------------------------------------------------
# Network release
# ------------------------------------------------------------------------------

@app.command()
def install(
    environment: Environment = typer.Argument(..., help="devnet | testnet | production"),
    namespace: str = typer.Option("besu-stack", "-n", "--namespace"),
    release: str = typer.Option("besu-stack", "-r", "--release"),
    openshift: bool = typer.Option(False, "-o", "--openshift", help="Use OpenShift values"),
    cloud: Optional[CloudProvider] = typer.Option(None, "-c", "--cloud"),
    performance: PerformanceTier = typer.Option(PerformanceTier.low, "-p", "--performance"),
    tls: bool = typer.Option(False, "-t", "--tls", help="TLS certificates via cert-manager"),
    ingress: IngressMode = typer.Option(IngressMode.auto, "-i", "--ingress"),
    values_file: Optional[Path] = typer.Option(None, "-f", "--values", help="Extra values file"),
    sets: Optional[List[str]] = typer.Option(None, "-s", "--set", help="KEY=VALUE, repeatable"),
    dry_run: bool = typer.Option(False, "-d", "--dry-run"),
    upgrade: bool = typer.Option(False, "-u", "--upgrade"),
    debug: bool = typer.Option(False, "--debug"),
    kube_context: Optional[str] = typer.Option(None, "--kube-context"),
):
    """Install (or upgrade) a Besu network release."""
    rt = _runtime("install", env=environment.tier, debug=debug, context=kube_context)
    opts = _install_options(
        environment, namespace, release, openshift, cloud, performance, tls,
        ingress, values_file, sets, dry_run, upgrade,
    )
    kubectl = KubectlRunner(kube_context=kube_context)
    installer = Installer(
        helm=HelmCliRunner(kube_context=kube_context),
        discovery=KubectlDiscovery(kubectl),
        settings=rt.settings,
        events=rt.events,
        exec_ctx=ExecutionContext(dry_run=dry_run, debug=debug),
    )

    with _failures_exit():
        result = installer.run(opts)

    if dry_run and result.template_output:
        typer.echo(result.template_output)
    typer.secho(f"Log file: {rt.log_path}", fg=typer.colors.BLUE)


@app.command()
def uninstall(
    namespace: str = typer.Option("besu-stack", "-n", "--namespace"),
    release: str = typer.Option("besu-stack", "-r", "--release"),
    all_releases: bool = typer.Option(False, "-a", "--all", help="Every besu-stack release in the cluster"),
    force: bool = typer.Option(False, "-f", "--force", help="Strip finalizers from stuck resources"),
    keep_pvcs: bool = typer.Option(False, "-k", "--keep-pvcs"),
    dry_run: bool = typer.Option(False, "-d", "--dry-run"),
    parallel: int = typer.Option(1, "--parallel", min=1, help="Concurrent units with --all"),
    debug: bool = typer.Option(False, "--debug"),
    kube_context: Optional[str] = typer.Option(None, "--kube-context"),
):
    """Uninstall one release (or all of them with -a)."""
    rt = _runtime("uninstall", env="-", debug=debug, context=kube_context)
    opts = UninstallOptions(
        namespace=namespace,
        release=release,
        all_releases=all_releases,
        force=force,
        keep_pvcs=keep_pvcs,
        dry_run=dry_run,
        parallel=parallel,
    )
    uninstaller = Uninstaller(
        helm=HelmCliRunner(kube_context=kube_context),
        kubectl=KubectlRunner(kube_context=kube_context),
        settings=rt.settings,
        events=rt.events,
        exec_ctx=ExecutionContext(dry_run=dry_run, force=force, debug=debug),
    )

    with _failures_exit():
        report = uninstaller.run(opts)

    if not report.ok:
        for unit, err in report.failures.items():
            typer.secho(f"  {unit}: {err}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.secho("Uninstall complete", fg=typer.colors.GREEN)


# ------------------------------------------------------------------------------
# Support infrastructure
# ------------------------------------------------------------------------------

@app.command("install-support")
def install_support(
    cloud: Optional[CloudProvider] = typer.Option(None, "-c", "--cloud"),
    tls: bool = typer.Option(False, "-t", "--tls", help="Install cert-manager and a ClusterIssuer"),
    email: Optional[str] = typer.Option(None, "-e", "--email", help="ACME account email"),
    prometheus: bool = typer.Option(False, "-p", "--prometheus"),
    dry_run: bool = typer.Option(False, "-d", "--dry-run"),
    upgrade: bool = typer.Option(False, "-u", "--upgrade"),
    debug: bool = typer.Option(False, "--debug"),
    kube_context: Optional[str] = typer.Option(None, "--kube-context"),
):
    """Install Contour, optionally cert-manager and kube-prometheus-stack."""
    rt = _runtime("install-support", env="-", debug=debug, context=kube_context)
    opts = SupportOptions(
        cloud=cloud, tls=tls, email=email, prometheus=prometheus, dry_run=dry_run, upgrade=upgrade,
    )
    installer = SupportInstaller(
        helm=HelmCliRunner(kube_context=kube_context),
        kubectl=KubectlRunner(kube_context=kube_context),
        settings=rt.settings,
        exec_ctx=ExecutionContext(dry_run=dry_run, debug=debug),
    )
    with _failures_exit():
        installer.run(opts)


@app.command("uninstall-support")
def uninstall_support(
    force: bool = typer.Option(False, "-f", "--force", help="Strip finalizers from stuck CRDs and namespaces"),
    contour_only: bool = typer.Option(False, "-c", "--contour-only"),
    cert_manager_only: bool = typer.Option(False, "-m", "--cert-manager-only"),
    prometheus_only: bool = typer.Option(False, "-p", "--prometheus-only"),
    dry_run: bool = typer.Option(False, "-d", "--dry-run"),
    yes: bool = typer.Option(False, "-y", "--yes", help="Do not ask about active deployments"),
    debug: bool = typer.Option(False, "--debug"),
    kube_context: Optional[str] = typer.Option(None, "--kube-context"),
):
    """Remove support components: cert-manager, then Contour, then Prometheus."""
    flags = {
        SupportComponent.contour: contour_only,
        SupportComponent.cert_manager: cert_manager_only,
        SupportComponent.prometheus: prometheus_only,
    }
    chosen = [c for c, on in flags.items() if on]
    if len(chosen) > 1:
        raise typer.BadParameter("-c, -m and -p are mutually exclusive")

    rt = _runtime("uninstall-support", env="-", debug=debug, context=kube_context)
    opts = SupportOptions(
        force=force, dry_run=dry_run, only=chosen[0] if chosen else None, assume_yes=yes,
    )
    teardown = SupportTeardown(
        helm=HelmCliRunner(kube_context=kube_context),
        kubectl=KubectlRunner(kube_context=kube_context),
        events=rt.events,
        exec_ctx=ExecutionContext(dry_run=dry_run, force=force, debug=debug),
        poll_interval=rt.settings.poll_interval_seconds,
    )
    with _failures_exit():
        report = teardown.run(opts)

    if report.aborted:
        return
    if report.stuck_crds:
        typer.secho(
            f"CRDs still present: {', '.join(report.stuck_crds)}. Re-run with -f/--force.",
            fg=typer.colors.YELLOW,
        )
    typer.secho("Support infrastructure removed", fg=typer.colors.GREEN)


# ------------------------------------------------------------------------------
# Offline rendering
# ------------------------------------------------------------------------------

@app.command()
def render(
    environment: Environment = typer.Argument(...),
    namespace: str = typer.Option("besu-stack", "-n", "--namespace"),
    release: str = typer.Option("besu-stack", "-r", "--release"),
    openshift: bool = typer.Option(False, "--openshift"),
    cloud: Optional[CloudProvider] = typer.Option(None, "-c", "--cloud"),
    performance: PerformanceTier = typer.Option(PerformanceTier.low, "-p", "--performance"),
    tls: bool = typer.Option(False, "-t", "--tls"),
    ingress: IngressMode = typer.Option(IngressMode.auto, "-i", "--ingress"),
    values_file: Optional[Path] = typer.Option(None, "-f", "--values"),
    sets: Optional[List[str]] = typer.Option(None, "-s", "--set"),
    api_versions: Optional[List[str]] = typer.Option(
        None, "-a", "--api-versions", help="Capabilities to assume, e.g. projectcontour.io/v1/HTTPProxy"
    ),
    output_dir: Optional[Path] = typer.Option(None, "-o", "--output-dir", help="Write a Helm chart here"),
    debug: bool = typer.Option(False, "--debug"),
):
    """
    Render the release without a cluster. Prints the manifests, or writes a
    Helm chart directory with -o.
    """
    rt = _runtime("render", env=environment.tier, debug=debug)
    opts = _install_options(
        environment, namespace, release, openshift, cloud, performance, tls, ingress, values_file, sets,
    )
    installer = Installer(
        helm=HelmCliRunner(),
        discovery=StaticDiscovery(api_versions or ()),
        settings=rt.settings,
        events=rt.events,
        exec_ctx=ExecutionContext(dry_run=True, debug=debug),
    )

    with _failures_exit():
        prepared = installer.prepare(opts)
        if output_dir is not None:
            chart_dir = build_chart(prepared.merged, prepared.rendered, prepared.ctx, output_dir)
            typer.secho(f"Chart written to {chart_dir}", fg=typer.colors.GREEN)
            return
        with tempfile.TemporaryDirectory(prefix="besu-stack-") as tmp:
            out = write_manifests(prepared.rendered, Path(tmp) / "manifests.yaml")
            typer.echo(out.read_text())


# ------------------------------------------------------------------------------
# In-pod key fetch
# ------------------------------------------------------------------------------

@app.command(
    "fetch-key",
    context_settings={"allow_interspersed_args": False},
)
def fetch_key_cmd(
    command: Optional[List[str]] = typer.Argument(None, help="Node command to exec after the key is written"),
    path_template: str = typer.Option(..., "--path-template", help="Vault path with an {ordinal} placeholder"),
    field: str = typer.Option("nodekey", "--field"),
    output: Path = typer.Option(Path("/secrets/nodekey"), "--output"),
    vault_addr: Optional[str] = typer.Option(None, "--vault-addr", envvar="VAULT_ADDR"),
    vault_role: Optional[str] = typer.Option(None, "--vault-role", envvar="VAULT_ROLE"),
):
    """
    Fetch this pod's node key from Vault, write it to --output, then exec the
    node command given after ``--``.
    """
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s", stream=sys.stderr)
    settings = load_vault_settings(vault_addr, vault_role)

    with _failures_exit():
        path = fetch_key(path_template=path_template, output=output, settings=settings, field=field)
        log.info("Node key written to %s", path)
        if not command:
            return
        exec_node(command)


@app.command()
def version():
    """Print the besu-stack version."""
    from besu_stack import __version__

    typer.echo(__version__)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
