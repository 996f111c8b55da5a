import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context

# Add the project root to sys.path so `backend.app` is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

# Importing base registers every GoldLedger table on SQLModel.metadata
from backend.app.db.base import SQLModel
from backend.app.config import get_settings
from backend.app.db.session import get_sync_engine

config = context.config

# Database URL: -x sqlalchemy.url="..." wins over settings (used by tests)
db_url = context.get_x_argument(as_dictionary=True).get("sqlalchemy.url")
if db_url:
    print(f"[Alembic env.py] Using DATABASE_URL from -x parameter: {db_url}")
else:
    db_url = get_settings().DATABASE_URL
    print(f"[Alembic env.py] Using DATABASE_URL from config: {db_url}")
config.set_main_option("sqlalchemy.url", db_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata


def run_migrations_offline() -> None:
    """Emit the migration SQL to the script output without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,  # Enable batch mode for SQLite
        )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live connection."""
    connectable = get_sync_engine(config.get_main_option("sqlalchemy.url"))

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,  # Enable batch mode for SQLite
            )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
