"""
dbkeeper Health Probe

Connect-and-authenticate readiness check against the published port.
A probe answers True or False; connection problems are a normal "not ready
yet" answer and are never raised.
"""

import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from dbkeeper.core.config import Configuration

logger = logging.getLogger(__name__)


class HealthProbe:
    """Runs ``SELECT 1`` as the application user."""

    def __init__(self, host: str, port: int, user: str, password: str, database: str, timeout: int = 5):
        self.timeout = timeout
        self.url = URL.create(
            "mysql+pymysql",
            username=user,
            password=password,
            host=host,
            port=port,
            database=database,
        )

    @classmethod
    def from_config(cls, config: Configuration, host: str = "127.0.0.1") -> "HealthProbe":
        return cls(
            host=host,
            port=config.host_port,
            user=config.user,
            password=config.password,
            database=config.database,
            timeout=config.health_timeout,
        )

    def __call__(self) -> bool:
        return self.check()

    def check(self) -> bool:
        engine = create_engine(
            self.url,
            poolclass=NullPool,
            connect_args={"connect_timeout": self.timeout},
        )
        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.debug("Probe against %s failed: %s", self.url, e.__class__.__name__)
            return False
        finally:
            engine.dispose()
