import os
import tempfile

# Settings are read at import time, so they must be in place before
# anything from trivia_economy is imported.
_tmp_dir = tempfile.mkdtemp(prefix="trivia-economy-tests-")
os.environ["DB_BACKEND"] = "sqlite"
os.environ["SQLITE_PATH"] = os.path.join(_tmp_dir, "economy.sqlite3")
os.environ["SCHEDULER_SECRET"] = "scheduler-test-secret"
os.environ["PAYMENT_SECRET"] = "payment-test-secret"
os.environ["PEPPER_DATA"] = "pepper"

import pytest  # noqa: E402

from trivia_economy.db import engine  # noqa: E402
from trivia_economy.models.schemas import Base  # noqa: E402


@pytest.fixture
async def database():
    """Fresh tables for every test that asks for them."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
