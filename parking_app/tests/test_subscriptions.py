import pytest
from datetime import timedelta
from sqlmodel import select
from parking_app.models.parking_models import Payment, Subscription
from parking_app.utils.calculation import calculate_new_expiry, local_date


def _create(client, lot, **overrides):
    payload = {
        "lot_id": lot["lot_id"],
        "space_number": 5,
        "holder_name": "Lucia Gomez",
        "plate": "ab123cd",
    }
    payload.update(overrides)
    return client.post("/abonos", json=payload)


@pytest.mark.parametrize("period_type,quantity,start_date,expected_end,expected_amount", [
    ("mensual", 1, "2024-01-31", "2024-02-29", 15000),
    ("semanal", 2, "2024-01-01", "2024-01-15", 8000),
    ("trimestral", 1, "2024-05-31", "2024-08-31", 45000),
    (None, 1, "2024-03-15", "2024-04-15", 15000),
])
def test_create_subscription(client, db, lot, period_type, quantity, start_date, expected_end, expected_amount):
    response = _create(client, lot, period_type=period_type, quantity=quantity, start_date=start_date)
    assert response.status_code == 200

    data = response.json()["data"]
    assert data["subscription"]["end_date"] == expected_end
    assert data["subscription"]["plate"] == "AB123CD"
    assert data["amount"] == expected_amount

    payment = db.get(Payment, data["payment_id"])
    assert payment.kind == "subscription"
    assert payment.subscription_id == data["subscription"]["id"]


@pytest.mark.parametrize("overrides,expected_status", [
    # Unknown period type is rejected instead of defaulting
    ({"period_type": "quincenal"}, 400),
    # Space without rate template
    ({"space_number": 8}, 400),
    # Motorcycle template has no weekly tariff
    ({"space_number": 6, "period_type": "semanal"}, 404),
    # Space does not exist
    ({"space_number": 50}, 404),
    ({"quantity": 0}, 422),
])
def test_create_subscription_errors(client, lot, overrides, expected_status):
    response = _create(client, lot, **overrides)
    assert response.status_code == expected_status


def test_space_with_active_subscription_cannot_be_subscribed_again(client, lot):
    assert _create(client, lot).status_code == 200

    response = _create(client, lot, plate="ZZZ999")
    assert response.status_code == 409


def test_subscribed_space_only_admits_its_holder(client, lot):
    assert _create(client, lot).status_code == 200

    response = client.post("/ocupacion/ingreso", json={"lot_id": lot["lot_id"], "space_number": 5, "plate": "OTHER1"})
    assert response.status_code == 400

    response = client.post("/ocupacion/ingreso", json={"lot_id": lot["lot_id"], "space_number": 5, "plate": "AB123CD"})
    assert response.status_code == 200


def test_extend_subscription(client, db, lot):
    today = local_date()
    created = _create(client, lot, start_date=today.isoformat()).json()["data"]
    subscription_id = created["subscription"]["id"]
    current_end = calculate_new_expiry(today, "mensual", 1)

    response = client.post(f"/abonos/{subscription_id}/extender",
                           json={"period_type": "semanal", "quantity": 1, "note": "pago adelantado"})
    assert response.status_code == 200

    data = response.json()["data"]
    assert data["previous_end_date"] == current_end.isoformat()
    assert data["end_date"] == (current_end + timedelta(days=7)).isoformat()
    assert data["amount"] == 4000

    payment = db.get(Payment, data["payment_id"])
    assert payment.kind == "extension"
    assert payment.description == "Extensión semanal x1 - pago adelantado"

    detail = client.get(f"/abonos/{subscription_id}").json()
    assert detail["subscription"]["end_date"] == data["end_date"]
    assert len(detail["payments"]) == 2


def test_extend_expired_subscription_on_reassigned_space(client, db, lot):
    old = _create(client, lot, period_type="semanal", start_date="2024-01-01").json()["data"]["subscription"]
    client.post("/abonos/vencimientos")
    new = _create(client, lot, plate="BBB222", start_date=local_date().isoformat())
    assert new.status_code == 200

    # THE SPACE NOW BELONGS TO ANOTHER HOLDER
    response = client.post(f"/abonos/{old['id']}/extender", json={"period_type": "anual", "quantity": 5})
    assert response.status_code == 409

    db.expire_all()
    active = db.exec(select(Subscription).where(Subscription.status == "activo")).all()
    assert [s.plate for s in active] == ["BBB222"]
    assert db.get(Subscription, old["id"]).end_date.isoformat() == "2024-01-08"


def test_extend_expired_subscription_reactivates_it(client, db, lot):
    old = _create(client, lot, period_type="semanal", start_date="2024-01-01").json()["data"]["subscription"]
    client.post("/abonos/vencimientos")

    response = client.post(f"/abonos/{old['id']}/extender", json={"period_type": "anual", "quantity": 5})
    assert response.status_code == 200

    db.expire_all()
    assert db.get(Subscription, old["id"]).status == "activo"


def test_extend_subscription_failure_keeps_end_date(client, db, lot):
    created = _create(client, lot, space_number=6, period_type="mensual")
    # MOTORCYCLE TEMPLATE HAS NO MONTHLY TARIFF EITHER
    assert created.status_code == 404

    subscription = Subscription(lot_id=lot["lot_id"], space_number=6, holder_name="Moto", plate="MOT001",
                                start_date=local_date(), end_date=local_date() + timedelta(days=30))
    db.add(subscription)
    db.commit()
    db.refresh(subscription)
    end_date = subscription.end_date

    response = client.post(f"/abonos/{subscription.id}/extender", json={"quantity": 1})
    assert response.status_code == 404

    db.expire_all()
    assert db.get(Subscription, subscription.id).end_date == end_date


@pytest.mark.parametrize("query,expected_status,expected_price", [
    ("?tipo=trimestral", 200, 45000),
    ("?tipo=semanal", 200, 4000),
    ("", 200, 15000),
    ("?tipo=quincenal", 400, None),
])
def test_read_period_price(client, lot, query, expected_status, expected_price):
    subscription_id = _create(client, lot).json()["data"]["subscription"]["id"]

    response = client.get(f"/abonos/{subscription_id}/precio{query}")
    assert response.status_code == expected_status
    if expected_price is not None:
        assert response.json()["period_price"] == expected_price


def test_process_expirations(client, db, lot):
    old = _create(client, lot, period_type="semanal", start_date="2024-01-01").json()["data"]["subscription"]
    current = _create(client, lot, space_number=4, start_date=local_date().isoformat()).json()["data"]["subscription"]

    response = client.post("/abonos/vencimientos")
    assert response.status_code == 200
    assert response.json()["data"]["expired"] == [old["id"]]

    db.expire_all()
    statuses = {s.id: s.status for s in db.exec(select(Subscription)).all()}
    assert statuses[old["id"]] == "inactivo"
    assert statuses[current["id"]] == "activo"

    response = client.get(f"/abonos?est_id={lot['lot_id']}&estado=activo")
    assert [s["id"] for s in response.json()] == [current["id"]]


def test_read_unknown_subscription(client):
    response = client.get("/abonos/999")
    assert response.status_code == 404
