"""
Playbook Dispatch — CLI entrypoint.

Usage:
    playbook-dispatch --help
    playbook-dispatch deploy -p site.yml -t web01 -e app_version=1.2.3
    playbook-dispatch validate -c deploy.yml
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any

import click

from playbook_dispatch import __version__
from playbook_dispatch.core.observability.logging_config import resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="playbook-dispatch")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to deploy.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Playbook Dispatch — route credentials and run ansible-playbook."""
    from playbook_dispatch.core.config.loader import find_deploy_file

    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else find_deploy_file()

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug, verbose, quiet, os.environ.get("PBD_LOG_LEVEL")),
        log_file=os.environ.get("PBD_LOG_FILE"),
        log_file_level=os.environ.get("PBD_LOG_FILE_LEVEL"),
        quiet_inventory=not debug,
    )


# ── Shared options ──────────────────────────────────────────────


def playbook_options(func):
    """Options that pick the playbook."""
    func = click.option("--playbook", "-p", default=None, help="Playbook file name.")(func)
    func = click.option("--playbook-dir", default=None, help="Directory holding the playbook.")(func)
    return func


def target_options(func):
    """Options that pick the target and inventory."""
    func = click.option("--target", "-t", "target_servers", default=None,
                        help="Host/group expression ('all' for every host).")(func)
    func = click.option("--inventory", "-i", default=None, help="Inventory path or host list.")(func)
    func = click.option("--json-output", "--json", "as_json", is_flag=True,
                        help="Output as JSON.")(func)
    return func


def _overrides(**values: Any) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _parse_vars(pairs: tuple[str, ...]) -> dict[str, str] | None:
    if not pairs:
        return None
    result = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--var")
        key, value = pair.split("=", 1)
        result[key.strip()] = value
    return result


def _emit_json(data: dict, ok: bool) -> None:
    click.echo(json.dumps(data, indent=2))
    sys.exit(0 if ok else 1)


# ── deploy ──────────────────────────────────────────────────────


@cli.command()
@target_options
@playbook_options
@click.option("--var", "-e", "variables", multiple=True, help="Extra variable KEY=VALUE (repeatable).")
@click.option("--tags", default=None, help="Only run plays and tasks tagged with these values.")
@click.option("--skip-tags", default=None, help="Skip plays and tasks tagged with these values.")
@click.option("--check/--no-check", "check_mode", default=None, help="Dry run: report changes only.")
@click.option("--ansible-verbose/--no-ansible-verbose", default=None, help="Pass -vvv to ansible-playbook.")
@click.option("--become/--no-become", default=None, help="Privilege escalation (Linux hosts).")
@click.option("--become-user", default=None, help="User to become (default: root).")
@click.option("--timeout", type=float, default=None, help="Run timeout in seconds (default: 3600).")
@click.option("--forks", type=int, default=None, help="Parallel processes (default: 10).")
@click.option("--notify/--no-notify", "notification", default=None, help="Write the deployment report.")
@click.option("--credentials", "credentials_path", type=click.Path(exists=True, dir_okay=False),
              default=None, help="YAML credentials file (default: environment variables).")
@click.option("--state-dir", type=click.Path(file_okay=False), default=None,
              help="Where the audit ledger and report are written.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no Ansible, no credentials).")
@click.pass_context
def deploy(
    ctx: click.Context,
    playbook: str | None,
    playbook_dir: str | None,
    target_servers: str | None,
    inventory: str | None,
    as_json: bool,
    variables: tuple[str, ...],
    tags: str | None,
    skip_tags: str | None,
    check_mode: bool | None,
    ansible_verbose: bool | None,
    become: bool | None,
    become_user: str | None,
    timeout: float | None,
    forks: int | None,
    notification: bool | None,
    credentials_path: str | None,
    state_dir: str | None,
    mock: bool,
) -> None:
    """Run a playbook against a target with the right credentials."""
    from playbook_dispatch.core.use_cases.deploy import run_deploy

    overrides = _overrides(
        playbook=playbook,
        playbook_dir=playbook_dir,
        target_servers=target_servers,
        inventory=inventory,
        ansible_vars=_parse_vars(variables),
        tags=tags,
        skip_tags=skip_tags,
        check_mode=check_mode,
        verbose=ansible_verbose,
        become=become,
        become_user=become_user,
        timeout=timeout,
        forks=forks,
        notification=notification,
    )

    result = run_deploy(
        config_path=ctx.obj.get("config_path"),
        overrides=overrides,
        credentials_path=Path(credentials_path) if credentials_path else None,
        state_dir=Path(state_dir) if state_dir else None,
        mock_mode=mock,
    )

    if as_json:
        _emit_json(result.to_dict(), result.ok)

    outcome = result.outcome
    if result.ok and outcome is not None:
        mode_label = "[mock] " if mock else ""
        click.secho(f"✅ {mode_label}Playbook executed successfully", fg="green", bold=True)
        click.echo(f"   Operation: {outcome.operation_id}")
        click.echo(f"   Hosts: {outcome.family}")
        click.echo(f"   Duration: {outcome.duration_ms / 1000:.1f}s")
        for warning in outcome.warnings:
            click.secho(f"   ⚠️  {warning}", fg="yellow")
        return

    message = result.error or (outcome.error_message if outcome else None) or "Deployment failed"
    click.secho(f"❌ {message}", fg="red")
    if outcome is not None and outcome.stderr and not ctx.obj.get("quiet"):
        click.echo(outcome.stderr.strip())
    sys.exit(1)


# ── classify / validate / ping / doctor ─────────────────────────


@cli.command()
@target_options
@click.pass_context
def classify(
    ctx: click.Context,
    target_servers: str | None,
    inventory: str | None,
    as_json: bool,
) -> None:
    """Show which OS families a target contains."""
    from playbook_dispatch.core.use_cases.preflight import run_classify

    result = run_classify(
        config_path=ctx.obj.get("config_path"),
        overrides=_overrides(target_servers=target_servers, inventory=inventory),
    )

    if as_json:
        _emit_json(result.to_dict(), result.ok)

    if result.error or result.classification is None:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    classification = result.classification
    profile = classification.profile
    click.secho(f"🔎 {result.config.target_servers if result.config else ''}", fg="cyan", bold=True)
    click.echo(f"   Family: {profile.family.value}")
    click.echo(f"   Linux: {'yes' if profile.has_linux else 'no'}")
    click.echo(f"   Windows: {'yes' if profile.has_windows else 'no'}")
    for host, family in sorted(classification.hosts.items()):
        click.echo(f"     {host:<24} {family or '(no facts)'}")
    if not classification.ok:
        click.secho(f"   ⚠️  Inventory unavailable: {classification.reason}", fg="yellow")


@cli.command()
@target_options
@playbook_options
@click.pass_context
def validate(
    ctx: click.Context,
    playbook: str | None,
    playbook_dir: str | None,
    target_servers: str | None,
    inventory: str | None,
    as_json: bool,
) -> None:
    """Check parameters, files, playbook syntax and host membership."""
    from playbook_dispatch.core.use_cases.preflight import run_validate

    result = run_validate(
        config_path=ctx.obj.get("config_path"),
        overrides=_overrides(
            playbook=playbook,
            playbook_dir=playbook_dir,
            target_servers=target_servers,
            inventory=inventory,
        ),
    )

    if as_json:
        _emit_json(result.to_dict(), result.ok)

    if not result.ok:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho("✅ Validation passed", fg="green", bold=True)
    if result.validation is not None:
        if result.validation.host_count is not None:
            click.echo(f"   Hosts matched: {result.validation.host_count}")
        for warning in result.validation.warnings:
            click.secho(f"   ⚠️  {warning}", fg="yellow")


@cli.command()
@target_options
@click.pass_context
def ping(
    ctx: click.Context,
    target_servers: str | None,
    inventory: str | None,
    as_json: bool,
) -> None:
    """Test connectivity to the target hosts."""
    from playbook_dispatch.core.use_cases.preflight import run_ping

    result = run_ping(
        config_path=ctx.obj.get("config_path"),
        overrides=_overrides(target_servers=target_servers, inventory=inventory),
    )

    if as_json:
        _emit_json(result.to_dict(), result.ok)

    if result.output:
        click.echo(result.output)
    if not result.ok:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)
    click.secho("✅ Connectivity OK", fg="green")


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--ansible-path", default="", help="Directory holding the ansible binaries.")
def doctor(as_json: bool, ansible_path: str) -> None:
    """Check that Ansible is installed."""
    from playbook_dispatch.core.use_cases.preflight import check_prerequisites

    result = check_prerequisites(ansible_path=ansible_path)

    if as_json:
        _emit_json(result.to_dict(), result.ok)

    for program, found in result.details.items():
        marker = "✓" if found else "✗"
        click.secho(f"   {marker} {program}", fg="green" if found else "red")
    if result.output:
        click.echo(f"   {result.output}")
    if not result.ok:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)


# ── history ─────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("-n", "count", type=int, default=10, help="Number of entries to show.")
@click.option("--state-dir", type=click.Path(file_okay=False), default=None,
              help="Directory holding .state/audit.ndjson.")
@click.pass_context
def history(ctx: click.Context, as_json: bool, count: int, state_dir: str | None) -> None:
    """Show recent deployments from the audit ledger."""
    from playbook_dispatch.core.persistence.audit import AuditWriter

    if state_dir:
        root = Path(state_dir)
    elif ctx.obj.get("config_path"):
        root = ctx.obj["config_path"].parent.resolve()
    else:
        root = Path.cwd()

    entries = AuditWriter(project_root=root).read_recent(count)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No deployments recorded.")
        return

    for entry in entries:
        color = "green" if entry.status == "success" else "red"
        click.secho(f"   {entry.status:<8}", fg=color, nl=False)
        click.echo(
            f" {entry.timestamp}  {entry.playbook} → {entry.target_servers}"
            f"  ({entry.family or '?'}, {entry.duration_ms}ms)"
        )


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
