import pytest
from datetime import timedelta
from sqlmodel import select
from parking_app.models.parking_models import Occupancy, Payment, Reservation
from parking_app.utils.calculation import local_date, utcnow


def _reserve(client, lot, **overrides):
    payload = {
        "lot_id": lot["lot_id"],
        "space_number": 2,
        "plate": "res001",
        "starts_at": (utcnow() + timedelta(hours=1)).isoformat(),
        "hours": 2,
    }
    payload.update(overrides)
    return client.post("/reservas", json=payload)


def test_create_reservation(client, db, lot, redis_double):
    response = _reserve(client, lot)
    assert response.status_code == 200

    data = response.json()["data"]
    assert data["code"] == f"RES-{local_date():%Y%m%d}-0001"
    assert data["plate"] == "RES001"
    assert data["status"] == "confirmada"
    assert data["price"] == 200

    payment = db.exec(select(Payment).where(Payment.kind == "reservation")).one()
    assert payment.amount == 200
    assert payment.method == "Transferencia"

    # THE DAILY SEQUENCE KEEPS GROWING AND EXPIRES
    second = _reserve(client, lot, space_number=3, plate="RES002").json()["data"]
    assert second["code"].endswith("-0002")
    assert list(redis_double.ttls.values()) == [172800]


@pytest.mark.parametrize("overrides,expected_status", [
    ({"hours": 0}, 400),
    ({"hours": 25}, 400),
    ({"starts_at": (utcnow() - timedelta(hours=1)).isoformat()}, 400),
    # Space without rate template
    ({"space_number": 8}, 400),
    # Space does not exist
    ({"space_number": 50}, 404),
])
def test_create_reservation_errors(client, lot, overrides, expected_status):
    response = _reserve(client, lot, **overrides)
    assert response.status_code == expected_status


def test_create_reservation_overlaps(client, lot):
    assert _reserve(client, lot).status_code == 200

    # SAME VEHICLE ON ANOTHER SPACE
    response = _reserve(client, lot, space_number=4)
    assert response.status_code == 400

    # SAME SPACE FOR ANOTHER VEHICLE
    response = _reserve(client, lot, plate="OTHER1")
    assert response.status_code == 409

    # AFTER THE FIRST ONE ENDS THE SPACE IS FREE AGAIN
    response = _reserve(client, lot, plate="OTHER1", starts_at=(utcnow() + timedelta(hours=4)).isoformat())
    assert response.status_code == 200


def test_create_reservation_on_subscribed_space(client, lot):
    created = client.post("/abonos", json={
        "lot_id": lot["lot_id"], "space_number": 2, "holder_name": "Ana", "plate": "ABO001",
    })
    assert created.status_code == 200

    response = _reserve(client, lot)
    assert response.status_code == 409


def test_confirm_arrival_and_exit(client, db, lot):
    code = _reserve(client, lot, starts_at=utcnow().isoformat()).json()["data"]["code"]

    response = client.post(f"/reservas/{code}/confirmar-llegada")
    assert response.status_code == 200
    occupancy = response.json()["data"]
    assert occupancy["reservation_code"] == code
    assert occupancy["agreed_price"] == 200
    assert client.get(f"/reservas/{code}").json()["status"] == "activa"

    # ARRIVAL CAN ONLY BE CONFIRMED ONCE
    response = client.post(f"/reservas/{code}/confirmar-llegada")
    assert response.status_code == 400

    response = client.post("/ocupacion/egreso", json={"lot_id": lot["lot_id"], "plate": "RES001"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["fee"] == 200
    assert data["prepaid"] == 200
    assert data["amount_due"] == 0
    assert client.get(f"/reservas/{code}").json()["status"] == "completada"

    # THE RESERVATION PAYMENT COVERS THE WHOLE STAY
    payments = db.exec(select(Payment).where(Payment.plate == "RES001")).all()
    assert [(p.kind, p.amount) for p in payments] == [("reservation", 200)]
    assert payments[0].occupancy_id == occupancy["id"]

    history = client.get(f"/ocupacion/historial?est_id={lot['lot_id']}").json()
    assert history[0]["amount"] == 200


def test_exit_after_reserved_hours_charges_only_the_difference(client, db, lot):
    code = _reserve(client, lot, starts_at=utcnow().isoformat()).json()["data"]["code"]
    occupancy_id = client.post(f"/reservas/{code}/confirmar-llegada").json()["data"]["id"]

    # THE DRIVER STAYED ONE HOUR LONGER THAN RESERVED
    occupancy = db.get(Occupancy, occupancy_id)
    occupancy.entry_time = utcnow() - timedelta(hours=2, minutes=30)
    db.add(occupancy)
    db.commit()

    response = client.post("/ocupacion/egreso", json={"lot_id": lot["lot_id"], "plate": "RES001"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["fee"] == 300
    assert data["amount_due"] == 100

    db.expire_all()
    payments = db.exec(select(Payment).where(Payment.occupancy_id == occupancy_id).order_by(Payment.id)).all()
    assert [(p.kind, p.amount) for p in payments] == [("reservation", 200), ("occupancy", 100)]

    history = client.get(f"/ocupacion/historial?est_id={lot['lot_id']}").json()
    assert history[0]["amount"] == 300


def test_confirm_arrival_on_occupied_space(client, db, lot):
    code = _reserve(client, lot, starts_at=utcnow().isoformat()).json()["data"]["code"]
    # PREVIOUS CAR STILL ON THE SPACE
    db.add(Occupancy(lot_id=lot["lot_id"], space_number=2, plate="LATE01", entry_time=utcnow() - timedelta(hours=3)))
    db.commit()

    response = client.post(f"/reservas/{code}/confirmar-llegada")
    assert response.status_code == 409


def test_confirm_arrival_after_reservation_ended(client, db, lot):
    now = utcnow()
    db.add(Reservation(code="RES-20240101-0002", lot_id=lot["lot_id"], space_number=3, plate="LATE02",
                       starts_at=now - timedelta(hours=3), ends_at=now - timedelta(hours=1), hours=2,
                       price=200, payment_method="efectivo", created_at=now - timedelta(hours=4)))
    db.commit()

    response = client.post("/reservas/RES-20240101-0002/confirmar-llegada")
    assert response.status_code == 410
    assert client.get("/reservas/RES-20240101-0002").json()["status"] == "expirada"

    db.expire_all()
    assert db.exec(select(Occupancy).where(Occupancy.plate == "LATE02")).first() is None


def test_walk_in_entry_on_reserved_space(client, lot):
    _reserve(client, lot, starts_at=utcnow().isoformat())

    response = client.post("/ocupacion/ingreso", json={"lot_id": lot["lot_id"], "space_number": 2, "plate": "WALKIN"})
    assert response.status_code == 400
    assert "reserved" in response.json()["detail"]

    # THE HOLDER OF THE RESERVATION CAN STILL PARK THERE
    response = client.post("/ocupacion/ingreso", json={"lot_id": lot["lot_id"], "space_number": 2, "plate": "res001"})
    assert response.status_code == 200


def test_walk_in_entry_before_reservation_starts(client, lot):
    # RESERVATION STARTS IN ONE HOUR, THE SPACE IS FREE NOW
    assert _reserve(client, lot).status_code == 200

    response = client.post("/ocupacion/ingreso", json={"lot_id": lot["lot_id"], "space_number": 2, "plate": "WALKIN"})
    assert response.status_code == 200


def test_cancel_reservation(client, lot):
    code = _reserve(client, lot).json()["data"]["code"]

    response = client.post(f"/reservas/{code}/cancelar")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "cancelada"

    # ONLY CONFIRMED RESERVATIONS CAN BE CANCELLED
    response = client.post(f"/reservas/{code}/cancelar")
    assert response.status_code == 400

    # A CANCELLED RESERVATION NO LONGER HOLDS THE SPACE
    assert _reserve(client, lot, plate="OTHER1").status_code == 200


def test_expire_reservations(client, db, lot):
    now = utcnow()
    db.add(Reservation(code="RES-20240101-0001", lot_id=lot["lot_id"], space_number=1, plate="OLD001",
                       starts_at=now - timedelta(hours=3), ends_at=now - timedelta(hours=1), hours=2,
                       price=200, payment_method="efectivo", created_at=now - timedelta(hours=4)))
    db.commit()
    current = _reserve(client, lot).json()["data"]["code"]

    response = client.post("/reservas/expirar")
    assert response.status_code == 200
    assert response.json()["data"]["expired"] == ["RES-20240101-0001"]

    db.expire_all()
    statuses = {r.code: r.status for r in db.exec(select(Reservation)).all()}
    assert statuses["RES-20240101-0001"] == "expirada"
    assert statuses[current] == "confirmada"

    response = client.get(f"/reservas?est_id={lot['lot_id']}")
    assert len(response.json()) == 2


def test_read_unknown_reservation(client):
    response = client.get("/reservas/RES-20240101-9999")
    assert response.status_code == 404
    assert client.post("/reservas/RES-20240101-9999/cancelar").status_code == 404


def test_reservation_arrival_does_not_count_twice_as_parked(client, db, lot):
    code = _reserve(client, lot, starts_at=utcnow().isoformat()).json()["data"]["code"]
    client.post(f"/reservas/{code}/confirmar-llegada")

    db.expire_all()
    open_rows = db.exec(select(Occupancy).where(Occupancy.exit_time.is_(None))).all()
    assert [(o.space_number, o.plate) for o in open_rows] == [(2, "RES001")]
