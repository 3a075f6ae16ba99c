import pytest
from datetime import datetime, timezone
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine
from parking_app.main import app
from parking_app.database import get_db, get_redis
from parking_app.models.parking_models import ParkingLot, RateTemplate, Space, TariffEntry


class CounterRedis:
    """Keeps INCR/EXPIRE in a dict so reservation codes can be generated offline."""

    def __init__(self):
        self.values = {}
        self.ttls = {}

    def incr(self, key):
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def db(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def redis_double():
    return CounterRedis()


@pytest.fixture
def client(engine, redis_double):
    def override_get_db():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: redis_double
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def lot(db):
    # ONE LOT WITH 5 CAR SPACES, 2 MOTORCYCLE SPACES AND 1 TRUCK SPACE
    parking_lot = ParkingLot(name="Centro", address="San Martin 100", capacity=8)
    db.add(parking_lot)
    db.commit()
    db.refresh(parking_lot)

    car = RateTemplate(lot_id=parking_lot.id, name="Autos", segment="AUT")
    moto = RateTemplate(lot_id=parking_lot.id, name="Motos", segment="MOT")
    truck = RateTemplate(lot_id=parking_lot.id, name="Camionetas", segment="CAM")
    db.add_all([car, moto, truck])
    db.commit()
    for template in (car, moto, truck):
        db.refresh(template)

    spaces = [Space(lot_id=parking_lot.id, number=n, segment="AUT", template_id=car.id) for n in range(1, 6)]
    spaces += [Space(lot_id=parking_lot.id, number=n, segment="MOT", template_id=moto.id) for n in (6, 7)]
    # SPACE 8 HAS NO TEMPLATE ON PURPOSE
    spaces.append(Space(lot_id=parking_lot.id, number=8, segment="CAM"))
    db.add_all(spaces)

    since = datetime(2024, 1, 1, tzinfo=timezone.utc)
    db.add_all([
        TariffEntry(lot_id=parking_lot.id, template_id=car.id, segment="AUT", period_type=1, price=100, effective_from=since),
        TariffEntry(lot_id=parking_lot.id, template_id=car.id, segment="AUT", period_type=2, price=800, effective_from=since),
        TariffEntry(lot_id=parking_lot.id, template_id=car.id, segment="AUT", period_type=3, price=15000, effective_from=since),
        TariffEntry(lot_id=parking_lot.id, template_id=car.id, segment="AUT", period_type=4, price=4000, effective_from=since),
        TariffEntry(lot_id=parking_lot.id, template_id=moto.id, segment="MOT", period_type=1, price=50, effective_from=since),
    ])
    db.commit()

    return {
        "lot_id": parking_lot.id,
        "car_template_id": car.id,
        "moto_template_id": moto.id,
        "truck_template_id": truck.id,
    }
