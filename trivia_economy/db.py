from contextlib import contextmanager

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trivia_economy.exceptions import TransientInfraError
from trivia_economy.load_secrets import db_backend

if db_backend == "sqlite":
    from trivia_economy.create_sqlite_engine import engine
else:
    from trivia_economy.create_postgres_engine import engine

# Centralized session factory to avoid creating it in router modules.
Session = async_sessionmaker(
    autocommit=False,
    class_=AsyncSession,
    autoflush=True,
    expire_on_commit=False,
    bind=engine,
)


async def create_tables() -> None:
    """Create all economy tables if they do not exist yet."""
    from trivia_economy.models.schemas import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@contextmanager
def translate_infra_errors():
    """Re-raise connectivity failures as TransientInfraError (retryable)."""
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        raise TransientInfraError(f"datastore unavailable: {e.orig or e}") from e
