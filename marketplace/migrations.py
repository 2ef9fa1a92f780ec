"""
Schema migrations, applied with Alembic.

Revisions live in ``marketplace/alembic/versions`` and the applied head is
recorded in ``alembic_version``. Each revision commits on its own, so a
failing one is never stamped. Upgrading an up-to-date database is a no-op,
so it is safe to call on every startup.
"""
import logging
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

SCRIPT_LOCATION = Path(__file__).parent / "alembic"


def build_config(script_location: Optional[Path] = None) -> Config:
    """Alembic config pointing at the packaged revisions, no ini file needed."""
    config = Config()
    config.set_main_option("script_location", str(script_location or SCRIPT_LOCATION))
    return config


def current_revision(engine: Engine) -> Optional[str]:
    with engine.connect() as connection:
        return MigrationContext.configure(connection).get_current_revision()


def head_revision(config: Optional[Config] = None) -> str:
    return ScriptDirectory.from_config(config or build_config()).get_current_head()


def run_migrations(engine: Engine, revision: str = "head", config: Optional[Config] = None) -> Optional[str]:
    """
    Upgrade the database behind ``engine`` to ``revision``.

    The engine's own connection is handed to Alembic so the engine's
    connect and begin hooks apply to the DDL as well.

    Returns: revision the database is at afterwards
    """
    config = config or build_config()
    before = current_revision(engine)

    with engine.connect() as connection:
        config.attributes["connection"] = connection
        try:
            command.upgrade(config, revision)
        except Exception as e:
            logger.error(f"Migration from revision {before} failed: {e}")
            raise
        finally:
            config.attributes.pop("connection", None)

    after = current_revision(engine)
    if after == before:
        logger.info(f"Database schema is up to date at revision {after}")
    else:
        logger.info(f"Migrated database schema from revision {before} to {after}")
    return after
