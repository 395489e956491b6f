from __future__ import annotations

import logging
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from app.core.config import DATABASE_URL, ENVIRONMENT

logger = logging.getLogger(__name__)
MIGRATIONS_PREFIX = "[MIGRATIONS]"


def validate_database_environment(environment: str = ENVIRONMENT, database_url: str = DATABASE_URL) -> None:
    if environment in {"prod", "production"} and database_url.startswith("sqlite"):
        logger.critical("%s SQLite is forbidden in production", MIGRATIONS_PREFIX)
        raise RuntimeError("SQLite is forbidden in production environment")


def expected_heads(alembic_config_path: Path) -> set[str]:
    alembic_cfg = Config(str(alembic_config_path))
    return set(ScriptDirectory.from_config(alembic_cfg).get_heads())


def ensure_migrations_applied(
    *,
    engine: Engine,
    alembic_config_path: Path,
    environment: str = ENVIRONMENT,
) -> None:
    """Refuse to serve against a schema that lags behind the migration scripts.

    SQLite development databases are built with ``create_all`` and skip the check.
    """
    if environment == "test" or engine.url.get_backend_name() == "sqlite":
        logger.info("%s skipped migration check env=%s backend=%s", MIGRATIONS_PREFIX, environment, engine.url.get_backend_name())
        return

    if not alembic_config_path.exists():
        logger.critical("%s alembic config not found path=%s", MIGRATIONS_PREFIX, alembic_config_path)
        raise RuntimeError("alembic config not found")

    heads = expected_heads(alembic_config_path)

    with engine.connect() as connection:
        if "alembic_version" not in inspect(connection).get_table_names():
            logger.critical("%s alembic_version table missing", MIGRATIONS_PREFIX)
            raise RuntimeError("Database has no migration state")
        current_rows = connection.exec_driver_sql("SELECT version_num FROM alembic_version").fetchall()

    current_heads = {row[0] for row in current_rows if row and row[0]}
    if current_heads != heads:
        logger.critical(
            "%s pending migration detected current=%s expected=%s",
            MIGRATIONS_PREFIX,
            sorted(current_heads),
            sorted(heads),
        )
        raise RuntimeError("Pending migrations detected")

    logger.info("%s migration state verified", MIGRATIONS_PREFIX)
