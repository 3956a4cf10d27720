"""Alembic environment. alembic.ini puts the project root on sys.path (prepend_sys_path)."""
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlmodel import SQLModel

from voucher_store import models  # noqa: F401  registers every table
from voucher_store.core.database import DATABASE_URL

config = context.config
# configparser interpolation: escape % in URL-encoded passwords
config.set_main_option("sqlalchemy.url", DATABASE_URL.replace("%", "%%"))

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _configure(dialect_name: str, **kwargs) -> None:
    # SQLite cannot ALTER most constraints in place; batch mode recreates the table
    context.configure(
        target_metadata=SQLModel.metadata,
        compare_type=True,
        render_as_batch=dialect_name == "sqlite",
        **kwargs,
    )


def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    _configure(url.split(":", 1)[0].split("+", 1)[0], url=url, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        _configure(connection.dialect.name, connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
