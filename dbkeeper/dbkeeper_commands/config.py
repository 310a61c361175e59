import json

import click

from dbkeeper.core.config import render_template
from dbkeeper.core.definition import build
from dbkeeper.dbkeeper_commands.common import handle_errors, load_configuration


@click.group()
def config():
    """Configuration commands.

    Examples:

        Validate the configuration and show it with secrets masked:
          dbkeeper --env-file .env config check

        Write a template with every recognized key:
          dbkeeper config template > .env
    """
    pass


@config.command()
@click.option('--definition', is_flag=True, default=False, help='Also print the derived service definition')
@click.pass_context
@handle_errors
def check(ctx, definition):
    """Validate the configuration."""
    configuration = load_configuration(ctx)
    click.echo("✅ Configuration is valid")
    for key, value in configuration.masked().items():
        click.echo(f"{key:30} = {value}")

    if definition:
        click.echo(json.dumps(build(configuration).to_dict(mask=True), indent=2, sort_keys=True))


@config.command()
def template():
    """Print an env-file template."""
    click.echo(render_template(), nl=False)
