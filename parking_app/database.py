from sqlmodel import create_engine, SQLModel, Session
from sqlalchemy import inspect
import logging
from redis import Redis
from parking_app.config import Config

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

connect_args = {"check_same_thread": False} if Config.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(Config.DATABASE_URL, echo=Config.SQL_ECHO, connect_args=connect_args)
redis_client = Redis.from_url(Config.REDIS_URL)

def init_db():
    # TABLE CLASSES MUST BE REGISTERED IN THE METADATA BEFORE create_all
    from parking_app.models import parking_models  # noqa: F401
    try:
        existing_tables = set(inspect(engine).get_table_names())
        missing = [t for t in SQLModel.metadata.sorted_tables if t.name not in existing_tables]

        # ONLY THE MISSING TABLES, EXISTING ONES ARE LEFT UNTOUCHED
        if missing:
            SQLModel.metadata.create_all(engine, tables=missing)
            logger.info(f"Tables created: {[t.name for t in missing]}")
        else:
            logger.info("All parking tables already exist, skipping creation")
    except Exception as e:
        logger.error(f"Error in initializing the database: {e}")
        raise

def get_db():
    with Session(engine) as session:
        try:
            yield session
        except Exception as e:
            # failed requests roll back before the session closes
            session.rollback()
            logger.error(f"Parking database session rolled back: {e}")
            raise

def get_redis():
    return redis_client
