"""Alembic environment for the coin ledger schema.

Online migrations run on the async engine; offline mode renders SQL with the
sync pymysql dialect. DATABASE_URL is read from the environment (or .env).

Only the wallet tables and the order_transaction reference constraint are
migrated here. The storefront framework owns order, payment and
order_summary, so autogenerate skips them.
"""

import asyncio
import os
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config
from sqlmodel import SQLModel

from alembic import context

load_dotenv()

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Register every table on SQLModel.metadata
from coin_ledger.models import order, wallet  # noqa: F401, E402

target_metadata = SQLModel.metadata

FRAMEWORK_TABLES = frozenset({"order", "payment", "order_summary"})

DATABASE_URL = os.getenv("DATABASE_URL", "")


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    """Keep framework-owned tables out of autogenerate diffs."""
    if type_ == "table" and name in FRAMEWORK_TABLES:
        return False
    return True


def run_migrations_offline() -> None:
    """Emit migration SQL without a live connection."""
    context.configure(
        url=DATABASE_URL.replace("+aiomysql", "+pymysql"),
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations on an async engine with a throwaway pool."""
    configuration = config.get_section(config.config_ini_section, {})
    configuration["sqlalchemy.url"] = DATABASE_URL

    connectable = async_engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
