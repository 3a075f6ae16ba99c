import logging
from datetime import date
from typing import Optional
from sqlmodel import Session, select
from fastapi import HTTPException
from parking_app.controllers.parking_controller import (
    get_lot_or_404, get_space_or_404, get_open_occupancy, payment_method_label,
)
from parking_app.models.parking_models import Space, Subscription, TariffEntry, Payment
from parking_app.schemas.parking_schemas import SubscriptionCreate, SubscriptionExtendRequest, GenericResponse
from parking_app.utils.calculation import (
    calculate_new_expiry, local_date, parse_period_type, period_price, resolve_tariff_price,
    subscription_tariff_code, utcnow,
)
from parking_app.utils.errors import TariffNotFoundError, InvalidPeriodTypeError

logger = logging.getLogger(__name__)


def _subscription_amount(space: Space, period_type: str, quantity: int, db: Session) -> float:
    if space.template_id is None:
        raise HTTPException(status_code=400, detail=f"Space {space.number} has no rate template assigned.")
    tariff_code = subscription_tariff_code(period_type)
    rows = db.exec(select(TariffEntry).where(
        TariffEntry.lot_id == space.lot_id,
        TariffEntry.template_id == space.template_id,
        TariffEntry.period_type == tariff_code,
    )).all()
    base_price = resolve_tariff_price(rows, space.lot_id, tariff_code, template_id=space.template_id)
    return period_price(base_price, period_type, quantity)


def _get_subscription_or_404(subscription_id: int, db: Session) -> Subscription:
    subscription = db.get(Subscription, subscription_id)
    if not subscription:
        raise HTTPException(status_code=404, detail=f"Subscription {subscription_id} was not found.")
    return subscription


class SubscriptionController:
    @staticmethod
    def create_subscription(data: SubscriptionCreate, db: Session):
        try:
            get_lot_or_404(data.lot_id, db)
            space = get_space_or_404(data.lot_id, data.space_number, db)
            period_type = parse_period_type(data.period_type)
            plate = data.plate.strip().upper()

            active = db.exec(select(Subscription).where(
                Subscription.lot_id == data.lot_id,
                Subscription.space_number == space.number,
                Subscription.status == "activo",
            )).first()
            if active:
                raise HTTPException(status_code=409, detail=f"Space {space.number} already has an active subscription.")

            occupancy = get_open_occupancy(data.lot_id, db, space_number=space.number)
            if occupancy and occupancy.plate != plate:
                raise HTTPException(status_code=409, detail=f"Space {space.number} is not available.")

            start_date = data.start_date or local_date()
            end_date = calculate_new_expiry(start_date, period_type, data.quantity)
            amount = _subscription_amount(space, period_type, data.quantity, db)

            subscription = Subscription(
                lot_id=data.lot_id,
                space_number=space.number,
                holder_name=data.holder_name,
                plate=plate,
                period_type=period_type,
                start_date=start_date,
                end_date=end_date,
                status="activo",
            )
            db.add(subscription)
            db.flush()

            payment = Payment(
                lot_id=data.lot_id,
                amount=amount,
                paid_at=utcnow(),
                method=payment_method_label(data.payment_method),
                plate=plate,
                kind="subscription",
                description=f"Abono {period_type} x{data.quantity}",
                subscription_id=subscription.id,
            )
            db.add(payment)
            db.commit()
            db.refresh(subscription)
            db.refresh(payment)
            logger.info(f"Subscription {subscription.id} created for '{plate}' on space {space.number} until {end_date}")

            return GenericResponse(
                message=f"Subscription created until {end_date.isoformat()}.",
                data={"subscription": subscription.model_dump(), "payment_id": payment.id, "amount": amount},
            )

        except HTTPException as http_exc:
            db.rollback()
            raise http_exc

        except TariffNotFoundError as e:
            db.rollback()
            raise HTTPException(status_code=404, detail=str(e))

        except (InvalidPeriodTypeError, ValueError) as e:
            db.rollback()
            raise HTTPException(status_code=400, detail=str(e))

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"Internal server error while creating subscription: {e}")

    @staticmethod
    def read_subscriptions(lot_id: int, db: Session, status: Optional[str] = None):
        try:
            get_lot_or_404(lot_id, db)
            query = select(Subscription).where(Subscription.lot_id == lot_id)
            if status:
                query = query.where(Subscription.status == status)
            return db.exec(query.order_by(Subscription.end_date)).all()
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_subscriptions: {e}")

    @staticmethod
    def read_subscription(subscription_id: int, db: Session):
        try:
            subscription = _get_subscription_or_404(subscription_id, db)
            payments = db.exec(select(Payment).where(Payment.subscription_id == subscription_id)
                               .order_by(Payment.paid_at)).all()
            return {
                "subscription": subscription.model_dump(),
                "payments": [p.model_dump() for p in payments],
            }
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_subscription: {e}")

    @staticmethod
    def read_period_price(subscription_id: int, period_type: Optional[str], db: Session):
        try:
            subscription = _get_subscription_or_404(subscription_id, db)
            period_type = parse_period_type(period_type)
            space = get_space_or_404(subscription.lot_id, subscription.space_number, db)
            return {
                "subscription_id": subscription_id,
                "period_type": period_type,
                "tariff_code": subscription_tariff_code(period_type),
                "period_price": _subscription_amount(space, period_type, 1, db),
            }

        except HTTPException as http_exc:
            raise http_exc

        except TariffNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))

        except InvalidPeriodTypeError as e:
            raise HTTPException(status_code=400, detail=str(e))

        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_period_price: {e}")

    @staticmethod
    def extend_subscription(subscription_id: int, request: SubscriptionExtendRequest, db: Session):
        try:
            subscription = _get_subscription_or_404(subscription_id, db)
            period_type = parse_period_type(request.period_type)
            space = get_space_or_404(subscription.lot_id, subscription.space_number, db)

            current_end = subscription.end_date
            new_end = calculate_new_expiry(current_end, period_type, request.quantity)
            if new_end <= current_end:
                raise HTTPException(status_code=400, detail="The new expiry date must be after the current one.")

            reactivates = subscription.status != "activo" and new_end >= local_date()
            if reactivates:
                other = db.exec(select(Subscription).where(
                    Subscription.lot_id == subscription.lot_id,
                    Subscription.space_number == subscription.space_number,
                    Subscription.status == "activo",
                    Subscription.id != subscription.id,
                )).first()
                if other:
                    raise HTTPException(
                        status_code=409,
                        detail=f"Space {subscription.space_number} already has active subscription {other.id}.",
                    )

            amount = _subscription_amount(space, period_type, request.quantity, db)

            subscription.end_date = new_end
            if reactivates:
                subscription.status = "activo"
            db.add(subscription)

            description = f"Extensión {period_type} x{request.quantity}"
            if request.note:
                description = f"{description} - {request.note}"
            payment = Payment(
                lot_id=subscription.lot_id,
                amount=amount,
                paid_at=utcnow(),
                method=payment_method_label(request.payment_method),
                plate=subscription.plate,
                kind="extension",
                description=description,
                subscription_id=subscription.id,
            )
            db.add(payment)
            db.commit()
            db.refresh(payment)
            logger.info(f"Subscription {subscription_id} extended from {current_end} to {new_end}")

            return GenericResponse(
                message=f"Subscription extended until {new_end.isoformat()}.",
                data={
                    "subscription_id": subscription_id,
                    "previous_end_date": current_end,
                    "end_date": new_end,
                    "amount": amount,
                    "payment_id": payment.id,
                },
            )

        except HTTPException as http_exc:
            db.rollback()
            raise http_exc

        except TariffNotFoundError as e:
            db.rollback()
            raise HTTPException(status_code=404, detail=str(e))

        except InvalidPeriodTypeError as e:
            db.rollback()
            raise HTTPException(status_code=400, detail=str(e))

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"Internal server error while extending subscription: {e}")

    @staticmethod
    def process_expirations(db: Session, today: Optional[date] = None):
        try:
            today = today or local_date()
            expired = db.exec(select(Subscription).where(
                Subscription.status == "activo", Subscription.end_date < today
            )).all()

            for subscription in expired:
                subscription.status = "inactivo"
                db.add(subscription)
            db.commit()

            expired_ids = [s.id for s in expired]
            if expired_ids:
                logger.info(f"Subscriptions marked inactive: {expired_ids}")
            return GenericResponse(message=f"{len(expired_ids)} subscriptions expired.", data={"expired": expired_ids})

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"Internal server error while processing expirations: {e}")
