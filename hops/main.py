"""
HOPS — CLI entrypoint.

Usage:
    hops --help
    hops catalog list
    hops generate sonarr radarr --write
    hops install jellyfin jellyseerr
"""

from __future__ import annotations

import json
import os
import signal
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from hops import __version__
from hops.core.observability.logging_config import (
    ENV_LOG_FILE,
    ENV_LOG_FILE_LEVEL,
    resolve_level,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="hops")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to hops.yml (default: $HOPS_CONFIG or auto-detect).",
)
@click.option(
    "--catalog",
    "catalog_path",
    type=click.Path(exists=False),
    default=None,
    help="Service catalog YAML (default: bundled catalog).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    catalog_path: str | None,
) -> None:
    """HOPS — Homelab Orchestration Provisioning Script."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["catalog_path"] = Path(catalog_path) if catalog_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(ENV_LOG_FILE),
        log_file_level=os.environ.get(ENV_LOG_FILE_LEVEL),
    )


# ── Shared helpers ──────────────────────────────────────────────


def _load_catalog(ctx: click.Context):
    """Load the catalog or exit with every defect listed."""
    from hops.core.config.catalog_loader import load_catalog
    from hops.core.errors import CatalogError

    try:
        return load_catalog(ctx.obj.get("catalog_path"))
    except CatalogError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        for defect in e.defects:
            click.echo(f"   • {defect}", err=True)
        sys.exit(1)


def _context_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Options that override hops.yml values."""
    options = [
        click.option("--puid", type=str, default=None, help="User id owning container files."),
        click.option("--pgid", type=str, default=None, help="Group id owning container files."),
        click.option("--tz", "timezone", default=None, help="Timezone, e.g. Europe/London."),
        click.option("--data-root", default=None, help="Media and downloads root."),
        click.option("--config-root", default=None, help="Per-service config root."),
        click.option("--install-root", default=None, help="Directory for docker-compose.yml."),
        click.option("--domain", default=None, help="Public domain for the reverse proxy."),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _load_context(ctx: click.Context, overrides: dict[str, Any]):
    """Load the configuration context or exit with the reason."""
    from hops.core.config.loader import find_config_file, load_context
    from hops.core.errors import ContextError

    path = ctx.obj.get("config_path") or find_config_file()
    try:
        return load_context(path, overrides)
    except ContextError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        if path is None:
            click.echo("   No hops.yml found; pass --config or the --puid/--pgid/... options.", err=True)
        sys.exit(1)


def _overrides(**values: Any) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _print_advisories(advisories: list[str]) -> None:
    for line in advisories:
        click.secho(f"   💡 {line}", fg="yellow")


# ── Catalog ─────────────────────────────────────────────────────


@cli.group()
def catalog() -> None:
    """Service catalog commands."""


@catalog.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def catalog_list(ctx: click.Context, as_json: bool) -> None:
    """List every installable service."""
    from hops.core.use_cases.catalog_check import catalog_listing

    rows = catalog_listing(_load_catalog(ctx))

    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return

    current = None
    for row in rows:
        if row["category"] != current:
            current = row["category"]
            label = current.replace("-", " ").title()
            click.secho(f"\n{label}", fg="cyan", bold=True)
        port = f":{row['port']}" if row["port"] else ""
        deps = f"  (needs {', '.join(row['dependencies'])})" if row["dependencies"] else ""
        click.echo(f"   • {row['id']:<22}{port:<8}{row['description']}{deps}")
    click.echo()


@catalog.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def catalog_check(ctx: click.Context, as_json: bool) -> None:
    """Validate the service catalog."""
    from hops.core.use_cases.catalog_check import check_catalog

    result = check_catalog(ctx.obj.get("catalog_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.catalog is not None  # guaranteed when valid
        click.secho("✅ Catalog is valid", fg="green", bold=True)
        click.echo(f"   Services: {len(result.catalog)}")
    else:
        click.secho("❌ Catalog errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings and not ctx.obj.get("quiet"):
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        sys.exit(1)


# ── Resolve / ports ─────────────────────────────────────────────


@cli.command()
@click.argument("services", nargs=-1)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def resolve(ctx: click.Context, services: tuple[str, ...], as_json: bool) -> None:
    """Show the dependency-closed selection for SERVICES."""
    from hops.core.use_cases.plan import resolve_request

    result = resolve_request(_load_catalog(ctx), services)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if not result.ok:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    selection = result.selection
    assert selection is not None  # guaranteed when ok
    click.secho(f"📦 {len(selection)} service(s):", fg="cyan", bold=True)
    for sid in selection.ids:
        marker = "  (added as dependency)" if selection.is_implicit(sid) else ""
        click.echo(f"   • {sid}{marker}")
    _print_advisories(result.advisories)


@cli.command()
@click.argument("services", nargs=-1)
@click.option("--no-host", is_flag=True, help="Skip probing ports bound on this host.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def ports(ctx: click.Context, services: tuple[str, ...], no_host: bool, as_json: bool) -> None:
    """Check SERVICES for port conflicts."""
    from hops.adapters.host.ports import SsPortProbe
    from hops.core.use_cases.plan import check_request_ports

    probe = None if no_host else SsPortProbe()
    result = check_request_ports(_load_catalog(ctx), services, probe)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    report = result.report
    assert report is not None  # guaranteed without error
    if report.clean:
        click.secho("✅ No port conflicts", fg="green")
        return

    for conflict in report.errors:
        click.secho(f"   ❌ {conflict.describe()}", fg="red")
    for conflict in report.warnings:
        click.secho(f"   ⚠️  {conflict.describe()}", fg="yellow")
    if report.has_errors:
        sys.exit(1)


# ── Generate ────────────────────────────────────────────────────


@cli.command()
@click.argument("services", nargs=-1)
@_context_options
@click.option("--write", is_flag=True, help="Write the manifest and config files to disk.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def generate(
    ctx: click.Context,
    services: tuple[str, ...],
    write: bool,
    as_json: bool,
    **context_values: Any,
) -> None:
    """Render docker-compose.yml for SERVICES."""
    from hops.core.services.env_file import EnvRequirements, write_env_file
    from hops.core.services.manifest_writer import write_aux_files, write_manifest
    from hops.core.use_cases.plan import build_plan

    catalog_ = _load_catalog(ctx)
    context = _load_context(ctx, _overrides(**context_values))
    result = build_plan(catalog_, services, context)

    if not result.ok:
        if as_json:
            click.echo(json.dumps(result.to_dict(), indent=2))
        else:
            click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    plan = result.plan
    assert plan is not None  # guaranteed when ok

    written_info: dict[str, Any] = {}
    if write:
        manifest_write = write_manifest(
            plan.manifest_text, plan.manifest_path, private=plan.manifest_private,
        )
        env_write = write_env_file(
            plan.env_path,
            EnvRequirements(secrets=plan.env_secrets, blanks=plan.env_blanks),
        )
        aux_written = write_aux_files(plan.aux_files)
        written_info = {
            "manifest": manifest_write.to_dict(),
            "env": env_write.to_dict(),
            "aux_written": [str(p) for p in aux_written],
        }

    if as_json:
        data = result.to_dict()
        data.update(written_info)
        click.echo(json.dumps(data, indent=2))
        return

    if not write:
        click.echo(plan.manifest_text, nl=False)
        return

    info = written_info["manifest"]
    if not info["written"]:
        click.secho(f"✅ {plan.manifest_path} unchanged", fg="green")
    else:
        click.secho(f"✅ Wrote {plan.manifest_path}", fg="green", bold=True)
        if info["backup"]:
            click.echo(f"   Backup: {info['backup']}")
            click.echo(f"   +{info['lines_added']} -{info['lines_removed']} lines")
            if ctx.obj.get("verbose") and info["diff"]:
                click.echo(info["diff"])
    if written_info["env"]["added"]:
        added = ", ".join(written_info["env"]["added"])
        click.echo(f"   🔑 {plan.env_path}: added {added}")
    for path in written_info["aux_written"]:
        click.echo(f"   📝 {path}")
    _print_advisories(result.advisories)


# ── Install ─────────────────────────────────────────────────────


def _progress(event: Any) -> None:
    icons = {
        "started": "▶",
        "completed": "✅",
        "failed": "❌",
        "retrying": "🔁",
        "degraded": "⚠️ ",
        "cancelled": "⛔",
        "rolled_back": "↩",
        "rollback_failed": "❗",
    }
    colors = {"failed": "red", "rollback_failed": "red", "degraded": "yellow", "retrying": "yellow"}
    detail = event.detail.get("error") or event.detail.get("service") or ""
    suffix = f"  {detail}" if detail else ""
    click.secho(
        f"   {icons.get(event.outcome, '•')} {event.step} {event.outcome}{suffix}",
        fg=colors.get(event.outcome),
    )


@cli.command()
@click.argument("services", nargs=-1)
@_context_options
@click.option("--mock", is_flag=True, help="Use the in-memory engine (no containers).")
@click.option(
    "--remove-images-on-rollback", is_flag=True,
    help="Delete pulled images if the installation is rolled back.",
)
@click.option("--yes", "-y", is_flag=True, help="Continue even if ports are already in use.")
@click.option(
    "--readiness-timeout", type=float, default=None,
    help="Seconds to wait for services to become ready (default: 300).",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    services: tuple[str, ...],
    mock: bool,
    remove_images_on_rollback: bool,
    yes: bool,
    readiness_timeout: float | None,
    as_json: bool,
    **context_values: Any,
) -> None:
    """Install SERVICES: provision, pull, start, verify."""
    from hops.core.engine.orchestrator import DEFAULT_READINESS_TIMEOUT, CancelToken
    from hops.core.use_cases.install import run_install

    catalog_ = _load_catalog(ctx)
    context = _load_context(ctx, _overrides(**context_values))

    if mock:
        from hops.adapters.mock import MockEngine, StaticPortProbe

        engine = MockEngine()
        probe = StaticPortProbe()
    else:
        from hops.adapters.containers.docker import DockerComposeEngine
        from hops.adapters.host.ports import SsPortProbe

        engine = DockerComposeEngine()
        probe = SsPortProbe()

    cancel = CancelToken()

    def _on_sigint(signum: int, frame: Any) -> None:
        click.secho("\n⛔ Cancelling after the current step…", fg="yellow", err=True)
        cancel.cancel()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    quiet = ctx.obj.get("quiet", False) or as_json
    try:
        run = run_install(
            catalog_, services, context, engine,
            probe=probe,
            allow_host_conflicts=yes,
            remove_images_on_rollback=remove_images_on_rollback,
            readiness_timeout=(
                readiness_timeout if readiness_timeout is not None else DEFAULT_READINESS_TIMEOUT
            ),
            cancel=cancel,
            on_event=None if quiet else _progress,
        )
    finally:
        signal.signal(signal.SIGINT, previous)

    if as_json:
        click.echo(json.dumps(run.to_dict(), indent=2))
        sys.exit(0 if run.ok else 1)

    if run.error:
        click.secho(f"❌ {run.error}", fg="red")
        if run.plan.port_report and run.plan.port_report.warnings and not yes:
            click.echo("   Re-run with --yes to install anyway.")
        sys.exit(1)

    result = run.result
    assert result is not None  # guaranteed without error

    if not result.ok:
        click.secho(f"\n❌ Installation failed at {result.failed_at}: {result.error}", fg="red", bold=True)
        for action in result.rollback:
            mark = "↩" if action.ok else "❗"
            line = f"   {mark} {action.step}: {action.action}"
            if action.error:
                line += f" ({action.error})"
            click.echo(line)
        sys.exit(1)

    installed = len(run.plan.selection) if run.plan.selection is not None else 0
    click.secho(f"\n✅ Installed {installed} service(s)", fg="green", bold=True)
    click.echo(f"   Manifest: {result.manifest_path}")
    if run.health is not None:
        for svc in run.health.services:
            if svc.status == "degraded":
                click.secho(f"   ⚠️  {svc.service_id}: {svc.message}", fg="yellow")
            elif svc.url:
                click.echo(f"   • {svc.service_id:<22}{svc.url}")
    _print_advisories(run.plan.advisories)


if __name__ == "__main__":
    cli()
