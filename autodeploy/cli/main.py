"""Main CLI entrypoint for AutoDeploy."""

import json
import logging
import sys
from typing import Any, Dict, Optional

import click

from ..analyzer import BuildConfiguration, analyze_repo, emit_report
from ..errors import AutoDeployError, NotFoundError
from ..events import LogLevel
from ..orchestrator import Orchestrator
from ..providers import RepositoryRef, list_providers
from ..redact import redact_string
from ..status import DeploymentStatus

logger = logging.getLogger(__name__)

LEVEL_COLORS = {
    LogLevel.INFO.value: "white",
    LogLevel.WARNING.value: "yellow",
    LogLevel.ERROR.value: "red",
    LogLevel.SUCCESS.value: "green",
}

STATUS_COLORS = {
    DeploymentStatus.DEPLOYED.value: "green",
    DeploymentStatus.NEEDS_SETUP.value: "yellow",
    DeploymentStatus.FAILED.value: "red",
}


@click.group()
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def main(ctx, output_json, verbose):
    """AutoDeploy - pick a host for a repository and deploy it there."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj['json'] = output_json
    ctx.obj.setdefault('orchestrator', None)
    ctx.obj.setdefault('analyzer', analyze_repo)


def _orchestrator() -> Orchestrator:
    obj = click.get_current_context().find_root().obj
    if obj.get('orchestrator') is None:
        obj['orchestrator'] = Orchestrator()
    return obj['orchestrator']


def _analyzer():
    return click.get_current_context().find_root().obj.get('analyzer') or analyze_repo


def _wants_json() -> bool:
    return click.get_current_context().find_root().obj.get('json', False)


def _json_output(data: Any) -> None:
    """Output data as JSON."""
    click.echo(json.dumps(data, indent=None))


def _human_output(message: str) -> None:
    """Output human-readable message."""
    if not _wants_json():
        click.echo(message)


def _fail(error: Exception, exit_code: int = 1) -> None:
    if isinstance(error, AutoDeployError):
        payload = error.to_dict()
    else:
        payload = {"code": "error", "message": str(error), "hint": None}
    if _wants_json():
        _json_output({'error': payload})
    else:
        _human_output(f"❌ {payload['message']}")
        if payload.get('hint'):
            _human_output(f"   Hint: {payload['hint']}")
    sys.exit(exit_code)


def _print_entry(entry: Dict[str, Any]) -> None:
    ts = entry.get('timestamp', '')[11:19]
    level = entry.get('level', 'info')
    message = redact_string(entry.get('message', ''))
    click.echo(f"[{ts}] {click.style(level.upper(), fg=LEVEL_COLORS.get(level, 'white'))}: {message}")


def _print_record(record: Dict[str, Any]) -> None:
    status = record['status']
    click.echo(f"📊 Deployment: {record['id']} ({record['project_id']})")
    click.echo(f"Provider: {record['provider']}" + (" [simulated]" if record.get('simulated') else ""))
    click.echo(f"Status: {click.style(status, fg=STATUS_COLORS.get(status, 'blue'))}")
    if record.get('strategy'):
        click.echo(f"Strategy: {record['strategy']} (tried: {', '.join(record.get('attempts') or [])})")
    if record.get('url'):
        click.echo(f"🌐 URL: {click.style(record['url'], fg='blue', underline=True)}")
    if record.get('error_code'):
        click.echo(f"Error: {record['error_code']}: {record.get('reason') or ''}")
    if record.get('rollback_of'):
        click.echo(f"Rollback of: {record['rollback_of']}")


@main.command()
@click.argument('repository')
@click.option('--branch', help='Branch to analyze')
@click.option('--cost', 'cost_preference', type=click.Choice(['low', 'any']),
              default='low', help='Cost preference for provider ranking')
@click.option('--report-dir', type=click.Path(file_okay=False), help='Write detection.json and analysis.md here')
def analyze(repository, branch, cost_preference, report_dir):
    """Detect the framework of REPOSITORY and rank providers."""
    try:
        result, commit = _analyzer()(repository, branch=branch, cost_preference=cost_preference)
    except (FileNotFoundError, ValueError, RuntimeError) as e:
        _fail(e)
        return

    if report_dir:
        emit_report(result, report_dir)

    if _wants_json():
        data = result.to_dict()
        data['commit'] = commit
        _json_output(data)
        return

    click.echo(f"🔍 {result.framework} (confidence {result.confidence:.2f}) at {commit}")
    bc = result.build_config
    for label, value in (("Install", bc.install_command), ("Build", bc.build_command),
                         ("Output", bc.output_directory), ("Start", bc.start_command)):
        if value:
            click.echo(f"  {label}: {value}")
    click.echo("Providers:")
    for c in result.providers:
        click.echo(f"  {c.provider:<8} {c.score:.2f} {c.suitability:<6} {c.estimated_cost}")
    for line in result.rationale:
        click.echo(f"  - {line}")
    for caveat in result.caveats:
        click.echo(click.style(f"  ! {caveat}", fg='yellow'))


@main.command()
@click.option('--project', 'project_id', required=True, help='Project identifier')
@click.option('--owner', 'owner_id', required=True, help='Owner of the provider credential')
@click.option('--repo', 'repository', required=True, help='GitHub repository URL')
@click.option('--provider', help='Provider id; detected from the repository when omitted')
@click.option('--branch', default='main', help='Branch to deploy')
@click.option('--commit', default='latest', help='Commit to deploy')
@click.option('--install', 'install_command', help='Override install command')
@click.option('--build', 'build_command', help='Override build command')
@click.option('--output', 'output_directory', help='Override output directory')
@click.option('--start', 'start_command', help='Override start command')
@click.option('--detect/--no-detect', default=True, help='Detect build settings from the repository')
def deploy(project_id, owner_id, repository, provider, branch, commit,
           install_command, build_command, output_directory, start_command, detect):
    """Deploy a repository and wait for a terminal status."""
    orchestrator = _orchestrator()
    overrides = BuildConfiguration(install_command=install_command, build_command=build_command,
                                   output_directory=output_directory, start_command=start_command)
    build_config = overrides
    try:
        if not provider:
            result, _ = _analyzer()(repository, branch=branch)
            provider = _first_supported(result, orchestrator)
            build_config = result.build_config.merged(overrides)
            _human_output(f"🔍 Detected {result.framework}; deploying to {provider}")
        elif detect:
            build_config = _detected_build_config(repository, branch).merged(overrides)
        record = orchestrator.deploy(project_id=project_id, owner_id=owner_id, repository=repository,
                                     provider=provider, branch=branch, commit=commit,
                                     build_config=build_config.to_dict())
    except (AutoDeployError, FileNotFoundError, ValueError, RuntimeError) as e:
        _fail(e)
        return

    data = record.to_dict()
    if _wants_json():
        _json_output(data)
    else:
        for entry in data['logs']:
            _print_entry(entry)
        _print_record(data)
    sys.exit(0 if record.status == DeploymentStatus.DEPLOYED else 1)


def _detected_build_config(repository: str, branch: str) -> BuildConfiguration:
    repository = RepositoryRef.parse(repository).url
    try:
        result, _ = _analyzer()(repository, branch=branch)
    except (FileNotFoundError, ValueError, RuntimeError) as e:
        logger.warning(f"Build detection for {repository} failed: {e}")
        return BuildConfiguration()
    return result.build_config


def _first_supported(result, orchestrator: Orchestrator) -> str:
    for candidate in result.providers:
        if candidate.provider in orchestrator.adapters:
            return candidate.provider
    raise NotFoundError(f"No supported provider for {result.framework}")


@main.command()
@click.argument('deployment_id')
def status(deployment_id):
    """Get deployment status."""
    try:
        record = _orchestrator().get_status(deployment_id)
    except NotFoundError as e:
        _fail(e, exit_code=2)
        return
    if _wants_json():
        _json_output(record.to_dict())
    else:
        _print_record(record.to_dict())


@main.command()
@click.argument('deployment_id')
@click.option('--level', type=click.Choice([lv.value for lv in LogLevel]), help='Only show this level')
def logs(deployment_id, level):
    """View deployment logs."""
    try:
        record = _orchestrator().get_status(deployment_id)
    except NotFoundError as e:
        _fail(e, exit_code=2)
        return
    entries = [e.to_dict() for e in record.logs if not level or e.level == level]
    if _wants_json():
        _json_output(entries)
        return
    if not entries:
        click.echo("No logs available yet")
    for entry in entries:
        _print_entry(entry)


@main.command()
@click.argument('deployment_id')
def cancel(deployment_id):
    """Request cancellation before the next strategy attempt."""
    try:
        record = _orchestrator().cancel(deployment_id)
    except AutoDeployError as e:
        _fail(e, exit_code=2 if isinstance(e, NotFoundError) else 1)
        return
    if _wants_json():
        _json_output({'deployment_id': record.id, 'status': record.status.value, 'cancel_requested': True})
    else:
        click.echo(f"🛑 Cancellation requested for {record.id}")


@main.command()
@click.argument('deployment_id')
def rollback(deployment_id):
    """Restore the deployment that preceded DEPLOYMENT_ID."""
    try:
        record = _orchestrator().rollback(deployment_id)
    except AutoDeployError as e:
        _fail(e, exit_code=2 if isinstance(e, NotFoundError) else 1)
        return
    if _wants_json():
        _json_output(record.to_dict())
    else:
        click.echo(f"⏪ Rolled back to {record.url} as {record.id}")


@main.command()
@click.argument('provider')
@click.option('--owner', 'owner_id', required=True, help='Owner of the credential')
@click.option('--token', help='Provider API token (prompted when omitted)')
@click.option('--demo', is_flag=True, help='Store a demo credential; deployments will be simulated')
def connect(provider, owner_id, token, demo):
    """Validate and store a provider credential."""
    if not demo and token is None:
        token = click.prompt(f"{provider} token", hide_input=True)
    try:
        credential = _orchestrator().vault.connect(owner_id, provider, secret=token, demo=demo)
    except AutoDeployError as e:
        _fail(e)
        return
    if _wants_json():
        _json_output({'provider': credential.provider, 'mode': credential.mode.value,
                      'identity': credential.identity})
    else:
        click.echo(f"🔑 Connected {credential.provider} as {credential.identity} ({credential.mode.value})")


@main.command()
@click.argument('provider')
@click.option('--owner', 'owner_id', required=True, help='Owner of the credential')
def disconnect(provider, owner_id):
    """Delete a stored provider credential."""
    if not _orchestrator().vault.disconnect(owner_id, provider):
        _fail(NotFoundError(f"No {provider} credential stored for {owner_id}"), exit_code=2)
        return
    if _wants_json():
        _json_output({'provider': provider.lower(), 'connected': False})
    else:
        click.echo(f"🔌 Disconnected {provider} for {owner_id}")


@main.command()
@click.option('--owner', 'owner_id', required=True, help='Owner of the credentials')
def connections(owner_id):
    """List the providers an owner has connected."""
    rows = _orchestrator().vault.list(owner_id)
    if _wants_json():
        _json_output([row.to_dict() for row in rows])
        return
    if not rows:
        click.echo(f"No providers connected for {owner_id}")
        return
    for row in rows:
        click.echo(f"{row.provider:<8} {row.mode.value:<5} {row.identity or '-'}")


@main.command()
def rotate():
    """Re-validate and re-encrypt every stored credential."""
    report = _orchestrator().vault.rotate_all()
    if _wants_json():
        _json_output(report.to_dict())
    else:
        click.echo(f"🔄 Rotated {report.rotated}, failed {report.failed}")
        for item in report.items:
            if not item.ok:
                click.echo(click.style(f"  {item.owner_id}/{item.provider}: {item.error_code}", fg='red'))
    sys.exit(0 if report.failed == 0 else 1)


@main.command()
def providers():
    """List providers and their fallback strategies."""
    rows = list_providers(_orchestrator().adapters)
    if _wants_json():
        _json_output(rows)
        return
    for row in rows:
        click.echo(f"{row['id']:<8} {' -> '.join(row['strategies'])}")


@main.command()
@click.option('--host', default='0.0.0.0', help='Bind address')
@click.option('--port', type=int, help='Port (defaults to $PORT or 8080)')
def serve(host, port: Optional[int]):
    """Run the REST API."""
    from ..api.app import serve as serve_api
    serve_api(host=host, port=port)


if __name__ == '__main__':
    main()
