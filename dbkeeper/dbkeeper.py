import click

from dbkeeper.dbkeeper_commands import config, service
from dbkeeper.dbkeeper_utils.log import configure_logging


@click.group()
@click.version_option(package_name="dbkeeper")
@click.option('--env-file', '-e', envvar='DBKEEPER_ENV_FILE', type=click.Path(dir_okay=False),
              help='dotenv or INI file to read configuration from (default: process environment)')
@click.option('--verbose', '-v', is_flag=True, default=False, help='Log debug output')
@click.pass_context
def cli(ctx, env_file, verbose):
    """Lifecycle and configuration manager for a MySQL container"""
    ctx.ensure_object(dict)
    ctx.obj['env_file'] = env_file
    configure_logging(verbose)


cli.add_command(service.up)
cli.add_command(service.down)
cli.add_command(service.restart)
cli.add_command(service.status)
cli.add_command(service.logs)
cli.add_command(service.check_docker)
cli.add_command(config.config)
