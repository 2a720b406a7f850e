from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from src.database.manager import resolve_database_url
from src.database.models import Base
from src.utils.config_loader import ConfigLoader

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# An explicit URL (MigrationManager) wins over the YAML config
if config.get_main_option("sqlalchemy.url") in (None, "", "sqlite:///./nog_auth.db"):
    config.set_main_option("sqlalchemy.url", resolve_database_url(ConfigLoader().get_database_config()))

target_metadata = Base.metadata


def run_migrations_offline():
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
