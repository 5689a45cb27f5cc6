"""
Alembic migration environment for the events / attendees / memberships schema.

The URL comes from DATABASE_URL_SYNC unless overridden on the command line:

    alembic -x dburl=sqlite:///./local.db upgrade head

SQLite URLs run in batch mode so CHECK constraints survive ALTERs.
"""

from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

from rsvp_engine.db.base import Base
from rsvp_engine.models import Event, Attendee, Membership  # noqa: F401 - Import models for autogenerate
from rsvp_engine.core.config import get_settings

config = context.config
settings = get_settings()

# Migrations run through the sync driver; the app itself uses asyncpg
database_url = context.get_x_argument(as_dictionary=True).get("dburl", settings.DATABASE_URL_SYNC)
config.set_main_option("sqlalchemy.url", database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
version_table = "rsvp_alembic_version"
batch_mode = database_url.startswith("sqlite")


def process_revision_directives(migration_context, revision, directives) -> None:
    """Skip writing an autogenerate revision when the models match the database."""
    if getattr(config.cmd_opts, "autogenerate", False):
        script = directives[0]
        if script.upgrade_ops.is_empty():
            directives[:] = []


def run_migrations_offline() -> None:
    """Generate SQL script without connecting to the database."""
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=batch_mode,
        compare_type=True,
        version_table=version_table,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live database connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=batch_mode,
            compare_type=True,
            version_table=version_table,
            process_revision_directives=process_revision_directives,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
