from apscheduler.schedulers.asyncio import AsyncIOScheduler
import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager

from trivia_economy.db import create_tables
from trivia_economy.load_secrets import speed_sweep_interval_seconds
from trivia_economy.routers import admin, internal, wallet
from trivia_economy.routers.errors import register_error_handlers
from trivia_economy.services.periodic_rewards import run_daily_distribution, run_weekly_distribution
from trivia_economy.services.speed_ticks import process_speed_ticks

scheduler = AsyncIOScheduler(timezone="UTC")
logging.basicConfig(level=logging.INFO)
logging.getLogger("aiosqlite").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app):
    """Create the economy tables and start the periodic sweeps.
    This function is called to start the server.
    """
    await create_tables()

    scheduler.add_job(
        process_speed_ticks,
        "interval",
        seconds=speed_sweep_interval_seconds,
        id="speed_ticks",
        max_instances=1,
        coalesce=True,
    )
    # Close yesterday's daily ranking just after midnight UTC
    scheduler.add_job(
        run_daily_distribution,
        "cron",
        hour=0,
        minute=5,
        id="daily_rewards",
        max_instances=1,
    )
    scheduler.add_job(
        run_weekly_distribution,
        "cron",
        day_of_week="mon",
        hour=0,
        minute=10,
        id="weekly_rewards",
        max_instances=1,
    )
    scheduler.start()
    logging.info("Start Server")
    try:
        yield
    finally:
        scheduler.shutdown()
        logging.info("Stop Server")


app = FastAPI(lifespan=lifespan)
register_error_handlers(app)
app.include_router(wallet.wallet_router)
app.include_router(internal.scheduler_router)
app.include_router(internal.payment_router)
app.include_router(admin.admin_router)


# if __name__ == "__main__":
#     uvicorn.run(app, host="0.0.0.0", port=8080, reload=True)
