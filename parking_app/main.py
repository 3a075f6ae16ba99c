from contextlib import asynccontextmanager
from fastapi import FastAPI
from redis.exceptions import RedisError
from parking_app.views.parking_view import router
from parking_app.views.tariff_view import router as tariff_router
from parking_app.views.subscription_view import router as subscription_router
from parking_app.views.shift_view import router as shift_router
from parking_app.views.reservation_view import router as reservation_router
from parking_app.database import init_db, redis_client
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        init_db()
        logger.info("Database Initialized Successfully")
    except Exception as e:
        logger.error(f"Failed to initialized the database {e}")
        raise

    # reservation codes are the only thing that needs Redis
    try:
        if redis_client.ping():
            logger.info("Connected to Redis successfully")
    except RedisError as e:
        logger.error(f"Failed to connect to Redis, reservations will be unavailable: {e}")
    yield


app: FastAPI = FastAPI(title="Parking Lot Management", lifespan=lifespan)
app.include_router(router)
app.include_router(tariff_router)
app.include_router(subscription_router)
app.include_router(shift_router)
app.include_router(reservation_router)
