"""CLI commands for deploying applications and launching tasks.

Implements 'shiftdeck deploy', 'undeploy', 'status', 'launch' and
'strategy'. Each command loads the deployer settings selected on the
command group and reports errors with consistent exit codes.
"""

from __future__ import annotations

import sys
from collections.abc import Generator
from contextlib import contextmanager

import click

from shiftdeck.config.loader import ConfigLoader
from shiftdeck.deploy.artifacts import ArtifactResolver
from shiftdeck.deploy.deployer import AppDeployer
from shiftdeck.deploy.fingerprint import ContentFingerprinter
from shiftdeck.deploy.launcher import TaskLauncher
from shiftdeck.deploy.strategies import StrategySelector, artifact_inspector
from shiftdeck.lib.errors import ConfigError, DeploymentError, InvalidRequestError
from shiftdeck.lib.logging_config import get_logger
from shiftdeck.models.request import DockerResource
from shiftdeck.models.settings import DeployerSettings

logger = get_logger(__name__)


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in deployment commands.

    Exit codes:
        2: Configuration or request error
        3: Deployment/execution error
    """
    try:
        yield
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(2)
    except InvalidRequestError as e:
        logger.error(f"Invalid request: {e}")
        click.secho(f"Error: Invalid request '{e.field}'", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(2)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(3)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(3)


def _settings(ctx: click.Context) -> DeployerSettings:
    return ConfigLoader().load_settings(ctx.obj.get("settings_path"))


def create_deployer(settings: DeployerSettings) -> AppDeployer:
    """Create an application deployer for the configured cluster."""
    return AppDeployer.from_settings(settings)


def create_launcher(settings: DeployerSettings) -> TaskLauncher:
    """Create a task launcher for the configured cluster."""
    return TaskLauncher.from_settings(settings)


def _wait_for(
    deployer: AppDeployer | TaskLauncher, key: str, timeout: float | None
) -> None:
    coordinator = deployer.coordinator(key)
    if coordinator is None:
        return
    click.echo(f"Waiting for build of '{key}'...")
    if not deployer.wait(key, timeout):
        raise DeploymentError(
            operation="wait",
            message=f"Build of '{key}' did not complete within {timeout}s",
        )
    if coordinator.error is not None:
        raise coordinator.error


@click.command()
@click.argument("request_file", type=click.Path(exists=True))
@click.option(
    "--wait/--no-wait",
    default=False,
    help="Wait until the build completes and the rollout is triggered",
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Maximum seconds to wait with --wait",
)
@click.pass_context
def deploy(
    ctx: click.Context, request_file: str, wait: bool, timeout: float | None
) -> None:
    """Deploy an application.

    REQUEST_FILE is a YAML deployment request. Prints the application id.

    Example:

        shiftdeck deploy app.yaml

        shiftdeck deploy app.yaml --wait --timeout 600
    """
    with handle_deployment_errors():
        request = ConfigLoader().load_request(request_file)
        deployer = create_deployer(_settings(ctx))
        try:
            app_id = deployer.deploy(request)
            click.echo(app_id)
            if wait:
                _wait_for(deployer, app_id, timeout)
        finally:
            deployer.shutdown()


@click.command()
@click.argument("app_id")
@click.option("--force", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def undeploy(ctx: click.Context, app_id: str, force: bool) -> None:
    """Undeploy an application.

    Build pipelines are kept so the image can be reused by a later deploy.
    """
    if not force and not click.confirm(f"Undeploy '{app_id}'?"):
        click.echo("Aborted.")
        return
    with handle_deployment_errors():
        deployer = create_deployer(_settings(ctx))
        try:
            deployer.undeploy(app_id)
        finally:
            deployer.shutdown()
        if not ctx.obj.get("quiet"):
            click.secho(f"Undeployed '{app_id}'", fg="green")


@click.command()
@click.argument("app_id")
@click.pass_context
def status(ctx: click.Context, app_id: str) -> None:
    """Show the status of an application."""
    with handle_deployment_errors():
        deployer = create_deployer(_settings(ctx))
        try:
            app_status = deployer.status(app_id)
        finally:
            deployer.shutdown()

        if ctx.obj.get("quiet"):
            click.echo(app_status.state.value)
            return

        click.echo()
        click.secho("Application Status", bold=True)
        click.echo(f"  App:       {app_status.app_id}")
        click.echo(f"  State:     {app_status.state.value}")
        if app_status.build_phase is not None:
            click.echo(f"  Build:     {app_status.build_phase.value}")
        for instance in app_status.instances:
            ready = "ready" if instance.ready else "not ready"
            click.echo(f"  Pod:       {instance.id} ({instance.phase}, {ready})")
        click.echo()


@click.command()
@click.argument("request_file", type=click.Path(exists=True))
@click.option(
    "--wait/--no-wait",
    default=False,
    help="Wait until the build completes and the task pod is created",
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Maximum seconds to wait with --wait",
)
@click.pass_context
def launch(
    ctx: click.Context, request_file: str, wait: bool, timeout: float | None
) -> None:
    """Launch a one-shot task. Prints the task id."""
    with handle_deployment_errors():
        request = ConfigLoader().load_request(request_file)
        launcher = create_launcher(_settings(ctx))
        try:
            task_id = launcher.launch(request)
            click.echo(task_id)
            if wait:
                _wait_for(launcher, task_id, timeout)
        finally:
            launcher.shutdown()


@click.command()
@click.argument("request_file", type=click.Path(exists=True))
@click.pass_context
def strategy(ctx: click.Context, request_file: str) -> None:
    """Show the build strategy and fingerprint for a request.

    Nothing is created on the cluster.
    """
    with handle_deployment_errors():
        request = ConfigLoader().load_request(request_file)
        settings = _settings(ctx)
        resource = request.resource
        if isinstance(resource, DockerResource):
            click.echo("Strategy:     none (pre-built image)")
            click.echo(f"Image:        {resource.image}")
            return

        resolver = ArtifactResolver(settings.maven)
        selected = StrategySelector(settings).select(
            request, artifact_inspector(resolver, resource)
        )
        fingerprint = ContentFingerprinter().fingerprint(resource)
        click.echo(f"Strategy:     {selected.kind.value}")
        click.echo(f"Fingerprint:  {fingerprint}")
