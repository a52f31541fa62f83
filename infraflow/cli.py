"""Main CLI entrypoint for Infraflow."""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click

from .config import CREDENTIAL_BACKENDS, Settings
from .destroyer import MANUAL_CLEANUP_HINT
from .errors import DestroyError, InfraflowError, LocalSyncError
from .events import get_status_from_events, read_events
from .models import ChangeSet, DeploymentTarget
from .reaper import Reaper
from .state import phase_seq
from .sync import Synchronizer
from .workflow import FlowState, Workflow

DESTROY_TOKEN = "yes"


def _load_settings(ctx) -> Settings:
    try:
        return Settings.load(ctx.obj["workdir"], **ctx.obj["overrides"])
    except ValueError as e:
        raise click.UsageError(str(e))


def _json_output(data: Dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=None, default=str))


def _info(message: str) -> None:
    click.echo(f"{click.style('[INFO]', fg='green')} {message}")


def _warning(message: str) -> None:
    click.echo(f"{click.style('[WARNING]', fg='yellow')} {message}")


def _error(message: str) -> None:
    click.echo(f"{click.style('[ERROR]', fg='red')} {message}", err=True)


def _report_failure(error: InfraflowError) -> None:
    _error(f"{error.phase} failed: {error}")
    if error.output:
        click.echo(error.output, err=True)
    if isinstance(error, DestroyError):
        _error(MANUAL_CLEANUP_HINT)


@click.group()
@click.option('--workdir', type=click.Path(file_okay=False, path_type=Path),
              help='Terraform root directory (default: current directory)')
@click.option('--namespace', '-n', 'namespaces', multiple=True,
              help='Namespace to reap before destroy (repeatable)')
@click.option('--reap-timeout', type=float, help='Seconds to wait for load balancers to be deprovisioned')
@click.option('--credential-backend', type=click.Choice(CREDENTIAL_BACKENDS),
              help='How kubeconfig entries are written')
@click.option('--kubeconfig', type=click.Path(dir_okay=False, path_type=Path),
              help='Kubeconfig file to update')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def main(ctx, workdir, namespaces, reap_timeout, credential_backend, kubeconfig, verbose):
    """Infraflow - guarded apply/destroy for Terraform-managed clusters."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj['workdir'] = workdir
    # applied over infraflow.yaml and INFRAFLOW_* values; None means unset
    ctx.obj['overrides'] = {
        'reap_namespaces': list(namespaces) or None,
        'reap_timeout': reap_timeout,
        'credential_backend': credential_backend,
        'kubeconfig': kubeconfig,
    }


@main.command()
@click.option('--yes', is_flag=True, help='Apply without asking for confirmation')
@click.option('--skip-preflight', is_flag=True, help='Skip dependency and AWS credential checks')
@click.pass_context
def apply(ctx, yes, skip_preflight):
    """Validate, plan and apply the infrastructure, then configure kubectl."""
    settings = _load_settings(ctx)
    workflow = Workflow(settings, preflight=not skip_preflight)

    def confirm(change_set: ChangeSet) -> bool:
        _info(f"Plan: {change_set.summary()}")
        if yes:
            return True
        return click.confirm("Do you want to apply this plan?", default=False)

    _info("Starting deployment...")
    result = workflow.run_apply(confirm)

    if result.state == FlowState.CANCELLED:
        _warning("Deployment cancelled.")
        sys.exit(0)
    if result.state == FlowState.FAILED:
        _report_failure(result.error)
        sys.exit(1)

    for warning in result.warnings:
        _warning(warning)
    _print_target(result.target)
    _info("Deployment completed successfully!")


@main.command()
@click.option('--yes', 'assume_yes', is_flag=True, help='Skip confirmation prompt')
@click.pass_context
def destroy(ctx, assume_yes):
    """Reap load balancers, destroy the infrastructure and clean kubeconfig."""
    settings = _load_settings(ctx)
    workflow = Workflow(settings, preflight=False)

    def confirm(target: Optional[DeploymentTarget]) -> bool:
        name = target.name if target else "the infrastructure"
        _warning(f"This will destroy {name} and all associated resources!")
        _warning("This action cannot be undone.")
        if assume_yes:
            return True
        reply = click.prompt(
            f"Are you sure you want to continue? Type '{DESTROY_TOKEN}' to confirm",
            default="", show_default=False,
        )
        return reply == DESTROY_TOKEN

    result = workflow.run_destroy(confirm)

    if result.state == FlowState.CANCELLED:
        _info("Destruction cancelled.")
        sys.exit(0)
    if result.state == FlowState.FAILED:
        _report_failure(result.error)
        sys.exit(1)

    _info(f"Reaped {result.reaped} dangling resource(s).")
    _info("Cleanup completed successfully! All resources have been destroyed.")


@main.command()
@click.pass_context
def reap(ctx):
    """Delete controller-created load balancers without destroying anything else."""
    settings = _load_settings(ctx)
    workflow = Workflow(settings, preflight=False)
    target = workflow.current_target()
    reaped = Reaper(settings).reap(target)
    _info(f"Reaped {reaped} dangling resource(s).")


@main.command()
@click.pass_context
def sync(ctx):
    """Write kubeconfig entries for the current target."""
    settings = _load_settings(ctx)
    target = Workflow(settings, preflight=False).current_target()
    if target is None:
        _error("No cluster found in terraform outputs. Run 'infraflow apply' first.")
        sys.exit(1)
    try:
        artifact = Synchronizer(settings).sync_apply(target)
    except LocalSyncError as e:
        _report_failure(e)
        sys.exit(1)
    _info(f"Context {artifact.context} written to {artifact.kubeconfig}")


@main.command()
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON')
@click.pass_context
def status(ctx, output_json):
    """Show workspace status derived from the event log."""
    settings = _load_settings(ctx)
    data = {
        "status": get_status_from_events(settings.home),
        "applied_seq": phase_seq(settings.home, "applied"),
        "reaped_seq": phase_seq(settings.home, "reaped"),
        "destroyed_seq": phase_seq(settings.home, "destroyed"),
        "home": str(settings.home),
    }
    if output_json:
        _json_output(data)
        return
    click.echo(f"Status: {click.style(data['status'], fg='red' if data['status'] == 'failed' else 'green')}")
    click.echo(f"State home: {data['home']}")


@main.command()
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON')
@click.pass_context
def logs(ctx, output_json):
    """Print the workspace event log."""
    settings = _load_settings(ctx)
    for event in read_events(settings.home):
        if output_json:
            _json_output(event)
            continue
        event_type = event.get('type', 'UNKNOWN')
        color = 'red' if event_type == 'ERROR' else 'yellow' if 'WARNING' in event_type else 'blue'
        click.echo(f"[{event.get('ts', '')}] {click.style(event_type, fg=color)}: {event.get('data', {})}")


@main.command()
@click.pass_context
def info(ctx):
    """Show cluster information and useful commands."""
    settings = _load_settings(ctx)
    target = Workflow(settings, preflight=False).current_target()
    if target is None:
        _warning("No cluster found in terraform outputs.")
        return
    _print_target(target)
    namespace = settings.reap_namespaces[0] if settings.reap_namespaces else "default"
    click.echo()
    _info("Useful Commands:")
    click.echo(f"kubectl --context {target.name} get nodes                # List cluster nodes")
    click.echo(f"kubectl --context {target.name} get pods -n {namespace}     # List application pods")
    click.echo(f"kubectl --context {target.name} get ingress -n {namespace}  # Get load balancer address")


def _print_target(target: Optional[DeploymentTarget]) -> None:
    if target is None:
        return
    _info("Cluster Information:")
    click.echo(f"Cluster Name: {target.cluster_name}")
    click.echo(f"Region: {target.region}")
    if target.endpoint:
        click.echo(f"Endpoint: {target.endpoint}")


if __name__ == '__main__':
    main()
