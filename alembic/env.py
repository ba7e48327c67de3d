from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool, create_engine

from rentchain.core.config import settings
from rentchain.db.session import Base

# Import all models so Alembic sees them in metadata
from rentchain.models.user import User  # noqa: F401
from rentchain.models.property import Property  # noqa: F401
from rentchain.models.booking import Booking  # noqa: F401
from rentchain.models.reclamation import Reclamation, ReclamationAttachment  # noqa: F401
from rentchain.models.settlement_job import SettlementJob  # noqa: F401
from rentchain.models.audit_log import AuditLog  # noqa: F401

config = context.config

# sqlalchemy.url always comes from the runtime DATABASE_URL, never from alembic.ini
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL to stdout without a live connection."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(config.get_main_option("sqlalchemy.url"), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
