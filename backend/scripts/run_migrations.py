"""Bring the quiz database schema up to date before the API starts.

Deploys run this ahead of the web process: it waits for the database to
accept connections, reports the revision it found, then runs
``alembic upgrade``. ``--sql`` prints the migration SQL instead of applying it.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

LOGGER = logging.getLogger("dailyquiz.migrations")
BACKEND_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG = BACKEND_ROOT / "alembic.ini"


def _env_number(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Upgrade the quiz database schema.")
    parser.add_argument("--revision", default=os.getenv("QUIZ_DB_MIGRATION_REVISION", "head"))
    parser.add_argument(
        "--timeout",
        type=int,
        default=int(_env_number("QUIZ_DB_MIGRATION_TIMEOUT", 60)),
        help="Seconds to wait for the database to accept connections.",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=_env_number("QUIZ_DB_MIGRATION_POLL_INTERVAL", 3),
        help="Seconds between readiness probes.",
    )
    parser.add_argument("--config", default=str(DEFAULT_CONFIG), help="Path to alembic.ini.")
    parser.add_argument("--sql", action="store_true", help="Print the migration SQL without touching the database.")
    return parser.parse_args(argv)


def get_alembic_config(config_path: str) -> Config:
    config = Config(config_path)
    # absolute, so the script works from any working directory
    config.set_main_option("script_location", str(BACKEND_ROOT / "alembic"))
    return config


def resolve_database_url(config: Config) -> str:
    """QUIZ_DATABASE_URL wins over whatever alembic.ini carries."""
    env_url = os.getenv("QUIZ_DATABASE_URL")
    if env_url:
        # configparser interpolation treats a bare % as a format marker
        config.set_main_option("sqlalchemy.url", env_url.replace("%", "%%"))
        return env_url
    url = config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("QUIZ_DATABASE_URL must be set before running migrations.")
    return url


def wait_for_database(database_url: str, *, timeout: int, poll_interval: float) -> None:
    """Probe with ``SELECT 1`` until it succeeds; give up after ``timeout`` seconds."""
    engine = create_engine(database_url, future=True, pool_pre_ping=True)
    deadline = time.monotonic() + timeout
    last_error: Optional[Exception] = None
    try:
        while time.monotonic() < deadline:
            try:
                with engine.connect() as connection:
                    connection.execute(text("SELECT 1"))
            except OperationalError as exc:
                last_error = exc
                LOGGER.warning("Database not reachable yet: %s", exc)
            except SQLAlchemyError as exc:
                # not a connectivity problem; waiting will not help
                last_error = exc
                LOGGER.error("Database probe failed: %s", exc)
                break
            else:
                LOGGER.info("Database is reachable.")
                return
            time.sleep(poll_interval)
    finally:
        engine.dispose()
    raise RuntimeError("Database did not become ready in time.") from last_error


def current_revision(database_url: str) -> Optional[str]:
    engine = create_engine(database_url, future=True)
    try:
        with engine.connect() as connection:
            return MigrationContext.configure(connection).get_current_revision()
    finally:
        engine.dispose()


def run_migrations(
    revision: str,
    *,
    timeout: int,
    poll_interval: float,
    config: Optional[Config] = None,
    sql: bool = False,
) -> None:
    config = config or get_alembic_config(str(DEFAULT_CONFIG))
    database_url = resolve_database_url(config)
    if sql:
        command.upgrade(config, revision, sql=True)
        return
    LOGGER.info("Upgrading to %s (timeout=%ss poll=%ss)", revision, timeout, poll_interval)
    wait_for_database(database_url, timeout=timeout, poll_interval=poll_interval)
    LOGGER.info("Database is at revision %s", current_revision(database_url) or "<empty>")
    command.upgrade(config, revision)
    LOGGER.info("Schema upgraded to %s.", revision)


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=os.getenv("QUIZ_DB_MIGRATION_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(argv)
    try:
        config = get_alembic_config(args.config)
        run_migrations(
            args.revision,
            timeout=args.timeout,
            poll_interval=args.poll_interval,
            config=config,
            sql=args.sql,
        )
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Migration run failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
