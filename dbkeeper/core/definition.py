"""
dbkeeper Service Definition Builder

Turns a validated Configuration into the immutable ServiceDefinition the
lifecycle controller hands to the container runtime. Everything not present
in the configuration is derived by convention, so the same configuration
always yields the same definition.
"""

import os

from dbkeeper.core.config import Configuration
from dbkeeper.models import (
    CONF_DIR_TARGET, DATA_DIR_TARGET, INIT_DIR_TARGET, ENGINE_PORT,
    PortMapping, ServiceDefinition, VolumeMount
)


def network_name(service_name: str) -> str:
    return f"{service_name}-net"


def _init_mount(init_script: str) -> VolumeMount:
    # a directory replaces the whole init dir, a single file is dropped into it
    if os.path.isdir(init_script):
        return VolumeMount(init_script, INIT_DIR_TARGET, read_only=True)
    target = f"{INIT_DIR_TARGET}/{os.path.basename(init_script)}"
    return VolumeMount(init_script, target, read_only=True)


def build(config: Configuration) -> ServiceDefinition:
    """Build the service definition for ``config``."""
    volumes = [VolumeMount(config.data_dir, DATA_DIR_TARGET)]
    if config.config_file:
        target = f"{CONF_DIR_TARGET}/{os.path.basename(config.config_file)}"
        volumes.append(VolumeMount(config.config_file, target, read_only=True))
    if config.init_script:
        volumes.append(_init_mount(config.init_script))

    environment = (
        ("MYSQL_ROOT_PASSWORD", config.root_password),
        ("MYSQL_DATABASE", config.database),
        ("MYSQL_USER", config.user),
        ("MYSQL_PASSWORD", config.password),
    )

    return ServiceDefinition(
        image=config.image,
        container_name=config.service_name,
        network=network_name(config.service_name),
        ports=(PortMapping(config.host_port, ENGINE_PORT),),
        volumes=tuple(volumes),
        environment=environment,
        restart_policy=config.restart_policy,
        init_script_path=config.init_script,
        memory_limit=config.memory_limit,
        cpus=config.cpus,
    )
