from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from villa_api.core.config import settings
from villa_api.db.session import Base

# registering the models fills Base.metadata for autogenerate
from villa_api.models import audit_log, booking, checkout_session, email_log, payment, user, villa  # noqa: F401

config = context.config

# DATABASE_URL from the environment always wins over alembic.ini
if not settings.DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set")
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configure(**kwargs) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )


def run_migrations_online() -> None:
    engine = create_engine(config.get_main_option("sqlalchemy.url"), poolclass=pool.NullPool)
    with engine.connect() as connection:
        # SQLite cannot ALTER most columns in place
        _configure(connection=connection, render_as_batch=connection.dialect.name == "sqlite")


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
