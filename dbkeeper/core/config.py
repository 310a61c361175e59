"""
dbkeeper Core Configuration

Resolves a flat key/value source (process environment, ``.env`` file or the
``[dbkeeper]`` section of an INI file) into a validated, immutable
``Configuration``. Resolution either returns a complete configuration or
raises a ``ConfigError`` naming the offending key; it never returns a
partial result and never defaults credentials.
"""

import configparser
import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values

from dbkeeper.core.exceptions import ConfigError, InvalidConfigValue, MissingConfigKey
from dbkeeper.core.utils import (
    MEMORY_PATTERN, RESTART_POLICY_PATTERN, SERVICE_NAME_PATTERN,
    mask_secret, parse_positive_number, validate_identifier, validate_port
)
from dbkeeper.dbkeeper_utils import variables

INI_SECTION = "dbkeeper"

ROOT_PASSWORD = "MYSQL_ROOT_PASSWORD"
DATABASE = "MYSQL_DATABASE"
USER = "MYSQL_USER"
PASSWORD = "MYSQL_PASSWORD"
PORT = "MYSQL_PORT"
INIT_SCRIPT = "DBKEEPER_INIT_SCRIPT"
CONFIG_FILE = "DBKEEPER_CONFIG_FILE"
DATA_DIR = "DBKEEPER_DATA_DIR"
IMAGE = "DBKEEPER_IMAGE"
SERVICE_NAME = "DBKEEPER_SERVICE_NAME"
RESTART_POLICY = "DBKEEPER_RESTART_POLICY"
MEMORY_LIMIT = "DBKEEPER_MEMORY_LIMIT"
CPUS = "DBKEEPER_CPUS"
HEALTH_RETRIES = "DBKEEPER_HEALTH_RETRIES"
HEALTH_INITIAL_DELAY = "DBKEEPER_HEALTH_INITIAL_DELAY"
HEALTH_MAX_DELAY = "DBKEEPER_HEALTH_MAX_DELAY"
HEALTH_TIMEOUT = "DBKEEPER_HEALTH_TIMEOUT"
RUNTIME_TIMEOUT = "DBKEEPER_RUNTIME_TIMEOUT"

REQUIRED_KEYS = (ROOT_PASSWORD, DATABASE, USER, PASSWORD)
SECRET_KEYS = (ROOT_PASSWORD, PASSWORD)

# key -> (default, help text) for the optional keys
OPTIONAL_KEYS = {
    PORT: ("3306", "Host port published for the MySQL server"),
    INIT_SCRIPT: ("", "SQL/shell file or directory run once on an empty volume"),
    CONFIG_FILE: ("", "Extra my.cnf mounted into /etc/mysql/conf.d"),
    DATA_DIR: ("", "Host directory holding the data volume"),
    IMAGE: ("mysql:8.0", "Container image"),
    SERVICE_NAME: ("mysql", "Container name; the network is <name>-net"),
    RESTART_POLICY: ("always", "no | always | unless-stopped | on-failure[:N]"),
    MEMORY_LIMIT: ("", "Container memory limit, e.g. 512m"),
    CPUS: ("", "Container CPU limit, e.g. 1.5"),
    HEALTH_RETRIES: ("10", "Readiness probe attempts before giving up"),
    HEALTH_INITIAL_DELAY: ("1.0", "Seconds before the second probe; doubles each attempt"),
    HEALTH_MAX_DELAY: ("30.0", "Upper bound for the probe backoff"),
    HEALTH_TIMEOUT: ("5", "Connect timeout of one probe in seconds"),
    RUNTIME_TIMEOUT: ("120", "Timeout for a single docker command in seconds"),
}


@dataclass(frozen=True)
class Configuration:
    """Validated configuration. Passwords are excluded from repr()."""
    root_password: str = field(repr=False)
    database: str
    user: str
    password: str = field(repr=False)
    host_port: int = 3306
    data_dir: str = ""
    image: str = "mysql:8.0"
    service_name: str = "mysql"
    restart_policy: str = "always"
    init_script: Optional[str] = None
    config_file: Optional[str] = None
    memory_limit: Optional[str] = None
    cpus: Optional[float] = None
    health_retries: int = 10
    health_initial_delay: float = 1.0
    health_max_delay: float = 30.0
    health_timeout: int = 5
    runtime_timeout: int = 120

    def masked(self) -> Dict[str, str]:
        """Key/value view for display with secrets masked."""
        return {
            ROOT_PASSWORD: mask_secret(self.root_password),
            DATABASE: self.database,
            USER: self.user,
            PASSWORD: mask_secret(self.password),
            PORT: str(self.host_port),
            DATA_DIR: self.data_dir,
            IMAGE: self.image,
            SERVICE_NAME: self.service_name,
            RESTART_POLICY: self.restart_policy,
            INIT_SCRIPT: self.init_script or "",
            CONFIG_FILE: self.config_file or "",
            MEMORY_LIMIT: self.memory_limit or "",
            CPUS: "" if self.cpus is None else str(self.cpus),
            HEALTH_RETRIES: str(self.health_retries),
            HEALTH_INITIAL_DELAY: str(self.health_initial_delay),
            HEALTH_MAX_DELAY: str(self.health_max_delay),
            HEALTH_TIMEOUT: str(self.health_timeout),
            RUNTIME_TIMEOUT: str(self.runtime_timeout),
        }


def load_source(path: Optional[str] = None) -> Mapping[str, str]:
    """Load a raw key/value source.

    Args:
        path: ``None`` for the process environment, an ``.ini``/``.cfg`` file
            (section ``[dbkeeper]``) or any other file parsed as dotenv.

    Raises:
        ConfigError: If the file does not exist or cannot be parsed
    """
    if path is None:
        return dict(os.environ)

    if not os.path.isfile(path):
        raise ConfigError("env_file", f"Configuration file '{path}' not found")

    if path.endswith((".ini", ".cfg")):
        parser = configparser.ConfigParser()
        # keys stay upper case like the environment variables they mirror
        parser.optionxform = str
        try:
            parser.read(path)
        except configparser.Error as e:
            raise ConfigError("env_file", f"Failed to parse '{path}'", str(e))
        if not parser.has_section(INI_SECTION):
            raise ConfigError("env_file", f"'{path}' has no [{INI_SECTION}] section")
        return dict(parser[INI_SECTION])

    values = dotenv_values(path)
    return {key: value for key, value in values.items() if value is not None}


def _get(source: Mapping[str, str], key: str) -> str:
    value = source.get(key)
    if value is None or value == "":
        return OPTIONAL_KEYS[key][0]
    return value.strip()


def _required(source: Mapping[str, str], key: str) -> str:
    if key not in source or source[key] is None:
        raise MissingConfigKey(key)
    value = source[key]
    if not value.strip():
        raise InvalidConfigValue(key, "must not be empty")
    return value if key in SECRET_KEYS else value.strip()


def _number(source: Mapping[str, str], key: str, cast):
    raw = _get(source, key)
    try:
        return parse_positive_number(raw, cast)
    except ValueError:
        raise InvalidConfigValue(key, f"'{raw}' is not a positive {cast.__name__}")


def _optional_path(source: Mapping[str, str], key: str) -> Optional[str]:
    raw = _get(source, key)
    if not raw:
        return None
    path = os.path.abspath(os.path.expanduser(raw))
    if not os.path.exists(path):
        raise InvalidConfigValue(key, f"'{raw}' does not exist")
    return path


def resolve(source: Mapping[str, str]) -> Configuration:
    """Validate ``source`` and build a Configuration.

    Raises:
        MissingConfigKey: If a required key is absent
        InvalidConfigValue: If a value is empty or malformed
    """
    root_password = _required(source, ROOT_PASSWORD)
    database = _required(source, DATABASE)
    user = _required(source, USER)
    password = _required(source, PASSWORD)

    reason = validate_identifier(database, 64)
    if reason:
        raise InvalidConfigValue(DATABASE, reason)
    reason = validate_identifier(user, 32)
    if reason:
        raise InvalidConfigValue(USER, reason)
    if user.lower() == "root":
        raise InvalidConfigValue(USER, "'root' is created by the image, choose an application user")

    port = _get(source, PORT)
    reason = validate_port(port)
    if reason:
        raise InvalidConfigValue(PORT, reason)

    service_name = _get(source, SERVICE_NAME)
    if not SERVICE_NAME_PATTERN.match(service_name):
        raise InvalidConfigValue(SERVICE_NAME, f"'{service_name}' is not a valid container name")

    restart_policy = _get(source, RESTART_POLICY)
    if not RESTART_POLICY_PATTERN.match(restart_policy):
        raise InvalidConfigValue(RESTART_POLICY, f"unknown restart policy '{restart_policy}'")

    memory_limit = _get(source, MEMORY_LIMIT) or None
    if memory_limit and not MEMORY_PATTERN.match(memory_limit):
        raise InvalidConfigValue(MEMORY_LIMIT, f"'{memory_limit}' is not a memory size")

    cpus = _number(source, CPUS, float) if _get(source, CPUS) else None

    data_dir = _get(source, DATA_DIR) or os.path.join(variables.DEFAULT_DATA_ROOT, service_name)

    return Configuration(
        root_password=root_password,
        database=database,
        user=user,
        password=password,
        host_port=int(port),
        data_dir=os.path.abspath(os.path.expanduser(data_dir)),
        image=_get(source, IMAGE),
        service_name=service_name,
        restart_policy=restart_policy,
        init_script=_optional_path(source, INIT_SCRIPT),
        config_file=_optional_path(source, CONFIG_FILE),
        memory_limit=memory_limit,
        cpus=cpus,
        health_retries=_number(source, HEALTH_RETRIES, int),
        health_initial_delay=_number(source, HEALTH_INITIAL_DELAY, float),
        health_max_delay=_number(source, HEALTH_MAX_DELAY, float),
        health_timeout=_number(source, HEALTH_TIMEOUT, int),
        runtime_timeout=_number(source, RUNTIME_TIMEOUT, int),
    )


def render_template() -> str:
    """Render an env-file template listing every recognized key."""
    lines = ["# dbkeeper configuration", "# Required"]
    for key in REQUIRED_KEYS:
        lines.append(f"{key}=")
    lines.append("")
    lines.append("# Optional")
    for key, (default, help_text) in OPTIONAL_KEYS.items():
        lines.append(f"# {help_text}")
        lines.append(f"# {key}={default}")
    return "\n".join(lines) + "\n"
