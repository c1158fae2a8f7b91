import os
from dotenv import load_dotenv

load_dotenv()

user = os.getenv("DB_USER")
password = os.getenv("DB_PASSWORD")
host = os.getenv("DB_HOST")
port = os.getenv("DB_PORT")
db_name = os.getenv("DB_NAME")
db_backend = os.getenv("DB_BACKEND", "postgres")
sqlite_path = os.getenv("SQLITE_PATH")
pepper_data = os.getenv("PEPPER_DATA", "")

# Shared credentials for the trusted scheduler and the payment collaborator
scheduler_secret = os.getenv("SCHEDULER_SECRET", "")
payment_secret = os.getenv("PAYMENT_SECRET", "")

# Economy tunables
regen_interval_seconds = int(os.getenv("REGEN_INTERVAL_SECONDS", "720"))
subscriber_regen_interval_seconds = int(os.getenv("SUBSCRIBER_REGEN_INTERVAL_SECONDS", "360"))
default_max_lives = int(os.getenv("DEFAULT_MAX_LIVES", "15"))
subscriber_max_lives = int(os.getenv("SUBSCRIBER_MAX_LIVES", "30"))
initial_coins = int(os.getenv("INITIAL_COINS", "0"))
speed_tick_interval_seconds = int(os.getenv("SPEED_TICK_INTERVAL_SECONDS", "60"))
speed_coins_per_tick = int(os.getenv("SPEED_COINS_PER_TICK", "1"))
speed_lives_per_tick = int(os.getenv("SPEED_LIVES_PER_TICK", "1"))
speed_sweep_interval_seconds = int(os.getenv("SPEED_SWEEP_INTERVAL_SECONDS", "60"))
admin_manual_credit_limit_per_hour = int(os.getenv("ADMIN_MANUAL_CREDIT_LIMIT_PER_HOUR", "10"))

if __name__ == "__main__":
    print(user, host, port, db_name, db_backend, sqlite_path)
