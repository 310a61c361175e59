import functools
import os
import sys

import click

from dbkeeper.core.config import load_source, resolve
from dbkeeper.core.exceptions import (
    ConfigError, ContainerRuntimeError, DBKeeperError, HealthCheckTimeout,
    RollbackError, VolumeError
)
from dbkeeper.core.health import HealthProbe
from dbkeeper.core.lifecycle import LifecycleController
from dbkeeper.dbkeeper_utils import variables
from dbkeeper.dbkeeper_utils.docker_runtime import DockerRuntime

EXIT_UNEXPECTED = 1
EXIT_CONFIG = 2
EXIT_RUNTIME = 3
EXIT_HEALTH = 4
EXIT_VOLUME = 5
EXIT_ABORTED = 6


def exit_code_for(error: DBKeeperError) -> int:
    if isinstance(error, RollbackError):
        error = error.original
    if isinstance(error, ConfigError):
        return EXIT_CONFIG
    if isinstance(error, ContainerRuntimeError):
        return EXIT_RUNTIME
    if isinstance(error, HealthCheckTimeout):
        return EXIT_HEALTH
    if isinstance(error, VolumeError):
        return EXIT_VOLUME
    return EXIT_UNEXPECTED


def handle_errors(func):
    """Turn DBKeeperError into a message and the matching exit code."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DBKeeperError as e:
            click.echo(f"❌ {e.message}", err=True)
            if e.details:
                click.echo(f"   {e.details}", err=True)
            if e.transition:
                click.echo(f"   during {e.transition[0]} -> {e.transition[1]}", err=True)
            sys.exit(exit_code_for(e))
    return wrapper


def resolve_env_file(env_file):
    if env_file:
        return env_file
    if os.path.isfile(variables.DEFAULT_ENV_FILE):
        return variables.DEFAULT_ENV_FILE
    return None


def load_configuration(ctx):
    return resolve(load_source(resolve_env_file(ctx.obj.get('env_file'))))


def get_controller(ctx) -> LifecycleController:
    """Wire configuration, docker runtime and health probe together."""
    config = load_configuration(ctx)
    return LifecycleController(
        config,
        runtime=DockerRuntime(timeout=config.runtime_timeout, cleanup_image=config.image),
        probe=HealthProbe.from_config(config)
    )
