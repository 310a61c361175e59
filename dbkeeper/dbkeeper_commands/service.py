import sys

import click

from dbkeeper.dbkeeper_commands.common import (
    EXIT_ABORTED, EXIT_RUNTIME, EXIT_UNEXPECTED, get_controller, handle_errors
)
from dbkeeper.dbkeeper_utils.docker_runtime import DockerRuntime
from dbkeeper.models import ServiceState

STATE_ICONS = {
    ServiceState.STOPPED: "⏸️ ",
    ServiceState.STARTING: "⏳",
    ServiceState.RUNNING: "✅",
    ServiceState.STOPPING: "⏳",
    ServiceState.FAILED: "❌",
}


def _echo_result(result):
    icon = "✅" if result.success else "⚠️ "
    click.echo(f"{icon} {result.name}: {result.message} ({result.elapsed:.2f}s)")


def _exit_unless_running(result):
    _echo_result(result)
    if not result.success:
        sys.exit(EXIT_UNEXPECTED)


@click.command()
@click.option('--pull/--no-pull', default=False, help='Pull the image before starting')
@click.pass_context
@handle_errors
def up(ctx, pull):
    """Start the database service.

    On an empty data volume the configured init script runs once;
    an initialized volume is started as is.

    Examples:

        dbkeeper up

        dbkeeper --env-file prod.env up --pull
    """
    controller = get_controller(ctx)

    click.echo("🔍 Checking Docker availability...")
    is_available, message = controller.runtime.check_installation()
    if not is_available:
        click.echo(f"❌ {message}", err=True)
        sys.exit(EXIT_RUNTIME)

    if pull:
        click.echo(f"📥 Pulling image: {controller.definition.image}")
        controller.runtime.pull(controller.definition.image)

    click.echo(f"🚀 Starting {controller.name} on port {controller.config.host_port}")
    _exit_unless_running(controller.start())


@click.command()
@click.option('--purge', is_flag=True, default=False, help='Also delete the data volume (irreversible)')
@click.option('--yes', '-y', is_flag=True, default=False, help='Do not ask for confirmation when purging')
@click.pass_context
@handle_errors
def down(ctx, purge, yes):
    """Stop the database service and remove its container.

    The data volume is kept unless --purge is given.
    """
    controller = get_controller(ctx)

    if not purge:
        _echo_result(controller.stop())
        return

    if not yes:
        click.echo(f"⚠️  This will permanently delete the data volume {controller.volume}")
        if not click.confirm("Are you sure you want to continue?"):
            click.echo("Operation cancelled.")
            sys.exit(EXIT_ABORTED)

    _echo_result(controller.destroy(confirm=True))


@click.command()
@click.pass_context
@handle_errors
def restart(ctx):
    """Restart the database service without re-running initialization."""
    controller = get_controller(ctx)
    _exit_unless_running(controller.restart())


@click.command()
@click.pass_context
@handle_errors
def status(ctx):
    """Show the service state and data volume classification."""
    controller = get_controller(ctx)
    service_status = controller.status()

    icon = STATE_ICONS[service_status.state]
    click.echo(f"{'service':8} | {service_status.name}")
    click.echo(f"{'state':8} | {icon} {service_status.state.value.upper()}")
    click.echo(f"{'container':8} | {service_status.container_id or '-'}")
    click.echo(f"{'port':8} | {service_status.host_port}")
    click.echo(f"{'volume':8} | {service_status.volume} ({service_status.volume_state.value})")


@click.command()
@click.option('--tail', '-n', default=100, show_default=True, type=int, help='Number of log lines')
@click.pass_context
@handle_errors
def logs(ctx, tail):
    """Print the last log lines of the database container."""
    controller = get_controller(ctx)
    click.echo(controller.logs(tail), nl=False)


@click.command(name='check-docker')
def check_docker():
    """Check if Docker is installed and running."""
    runtime = DockerRuntime()

    click.echo("🔍 Checking Docker installation...")
    is_available, message = runtime.check_installation()

    if not is_available:
        click.echo(f"❌ {message}", err=True)
        sys.exit(EXIT_RUNTIME)

    click.echo(f"✅ {message}")
    success, stdout, _ = runtime.run_command(["docker", "info", "--format", "{{.ServerVersion}}"], timeout=10)
    if success:
        click.echo(f"📋 Docker Engine version: {stdout.strip()}")
