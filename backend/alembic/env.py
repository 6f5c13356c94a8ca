"""Alembic environment configuration."""
import asyncio
from logging.config import fileConfig

from alembic import context

from pulse.settings import settings
from pulse.infra.db.base import Base, build_engine, normalize_async_pg_url
from pulse.infra.db.models import *  # noqa: F401, F403

config = context.config

# Same URL handling as the app (asyncpg driver, sslmode translated to connect args)
_db_url = normalize_async_pg_url(config.get_main_option("sqlalchemy.url") or settings.database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL without a database connection."""
    context.configure(
        url=_db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):
    context.configure(connection=connection, target_metadata=target_metadata)

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Run migrations over the async engine."""
    connectable = build_engine(_db_url)
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
