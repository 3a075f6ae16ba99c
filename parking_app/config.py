import os
from zoneinfo import ZoneInfo
from dotenv import load_dotenv

load_dotenv()

class Config:
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./parking.db")
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

    SECONDS_PER_HOUR = 3600
    TIMEZONE = 'America/Argentina/Buenos_Aires'

    # RESERVATIONS
    RESERVATION_MIN_HOURS = 1
    RESERVATION_MAX_HOURS = 24
    RESERVATION_PAST_TOLERANCE_MINUTES = 5
    RESERVATION_CODE_PREFIX = "RES"
    RESERVATION_SEQUENCE_TTL_SECONDS = 2 * 24 * 3600


    @staticmethod
    def get_timezone():
        return ZoneInfo(Config.TIMEZONE)
