import logging
from datetime import timedelta
from sqlmodel import Session, select
from fastapi import HTTPException
from redis import Redis
from parking_app.config import Config
from parking_app.controllers.parking_controller import (
    RESERVATION_HOLDING_STATES, get_lot_or_404, get_space_or_404, get_open_occupancy, payment_method_label,
)
from parking_app.models.parking_models import Reservation, Subscription, TariffEntry, Occupancy, Payment
from parking_app.schemas.parking_schemas import ReservationCreate, GenericResponse
from parking_app.utils.calculation import (
    PERIOD_HOUR, as_utc, intervals_overlap, local_date, resolve_tariff_price, utcnow,
)
from parking_app.utils.errors import TariffNotFoundError

logger = logging.getLogger(__name__)


def next_reservation_code(redis_client: Redis, day) -> str:
    key = f"reservations:sequence:{day:%Y%m%d}"
    number = redis_client.incr(key)
    if number == 1:
        redis_client.expire(key, Config.RESERVATION_SEQUENCE_TTL_SECONDS)
    return f"{Config.RESERVATION_CODE_PREFIX}-{day:%Y%m%d}-{number:04d}"


def _get_reservation_or_404(code: str, db: Session) -> Reservation:
    reservation = db.exec(select(Reservation).where(Reservation.code == code)).first()
    if not reservation:
        raise HTTPException(status_code=404, detail=f"Reservation '{code}' was not found.")
    return reservation


class ReservationController:
    @staticmethod
    def create_reservation(data: ReservationCreate, db: Session, redis_client: Redis):
        try:
            get_lot_or_404(data.lot_id, db)
            space = get_space_or_404(data.lot_id, data.space_number, db)
            plate = data.plate.strip().upper()

            if not Config.RESERVATION_MIN_HOURS <= data.hours <= Config.RESERVATION_MAX_HOURS:
                raise HTTPException(
                    status_code=400,
                    detail=f"Reservation length must be between {Config.RESERVATION_MIN_HOURS} and {Config.RESERVATION_MAX_HOURS} hours.",
                )

            now = utcnow()
            starts_at = as_utc(data.starts_at)
            tolerance = timedelta(minutes=Config.RESERVATION_PAST_TOLERANCE_MINUTES)
            if starts_at < now - tolerance:
                raise HTTPException(
                    status_code=400,
                    detail=f"Reservations cannot start more than {Config.RESERVATION_PAST_TOLERANCE_MINUTES} minutes in the past.",
                )
            ends_at = starts_at + timedelta(hours=data.hours)

            holding = db.exec(select(Reservation).where(
                Reservation.lot_id == data.lot_id, Reservation.status.in_(RESERVATION_HOLDING_STATES)
            )).all()
            if any(r.plate == plate and intervals_overlap(r.starts_at, r.ends_at, starts_at, ends_at) for r in holding):
                raise HTTPException(status_code=400, detail=f"Vehicle '{plate}' already has a reservation in this time range.")
            if any(r.space_number == space.number and intervals_overlap(r.starts_at, r.ends_at, starts_at, ends_at)
                   for r in holding):
                raise HTTPException(status_code=409, detail=f"Space {space.number} is not available in the selected time range.")

            subscription = db.exec(select(Subscription).where(
                Subscription.lot_id == data.lot_id,
                Subscription.space_number == space.number,
                Subscription.status == "activo",
            )).first()
            if subscription:
                raise HTTPException(status_code=409, detail=f"Space {space.number} is assigned to a subscription.")

            if space.template_id is None:
                raise HTTPException(status_code=400, detail=f"Space {space.number} has no rate template assigned.")
            rows = db.exec(select(TariffEntry).where(
                TariffEntry.lot_id == data.lot_id,
                TariffEntry.template_id == space.template_id,
                TariffEntry.period_type == PERIOD_HOUR,
            )).all()
            hourly_price = resolve_tariff_price(rows, data.lot_id, PERIOD_HOUR,
                                                template_id=space.template_id, now=starts_at)
            price = hourly_price * data.hours

            code = next_reservation_code(redis_client, local_date(now))
            reservation = Reservation(
                code=code,
                lot_id=data.lot_id,
                space_number=space.number,
                plate=plate,
                starts_at=starts_at,
                ends_at=ends_at,
                hours=data.hours,
                price=price,
                payment_method=data.payment_method,
                status="confirmada",
                created_at=now,
            )
            payment = Payment(
                lot_id=data.lot_id,
                amount=price,
                paid_at=now,
                method=payment_method_label(data.payment_method),
                plate=plate,
                kind="reservation",
                description=f"Reserva {code}",
            )
            db.add(payment)
            db.flush()
            reservation.payment_id = payment.id
            db.add(reservation)
            db.commit()
            db.refresh(reservation)
            logger.info(f"Reservation {code} created for '{plate}' on space {space.number}")
            return GenericResponse(message=f"Reservation {code} confirmed.", data=reservation.model_dump())

        except HTTPException as http_exc:
            raise http_exc

        except TariffNotFoundError as e:
            db.rollback()
            raise HTTPException(status_code=404, detail=str(e))

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"Internal server error while creating reservation: {e}")

    @staticmethod
    def read_reservations(lot_id: int, db: Session):
        try:
            get_lot_or_404(lot_id, db)
            return db.exec(select(Reservation).where(Reservation.lot_id == lot_id)
                           .order_by(Reservation.starts_at.desc())).all()
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_reservations: {e}")

    @staticmethod
    def read_reservation(code: str, db: Session):
        try:
            return _get_reservation_or_404(code, db)
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_reservation: {e}")

    @staticmethod
    def confirm_arrival(code: str, db: Session):
        try:
            reservation = _get_reservation_or_404(code, db)
            if reservation.status != "confirmada":
                raise HTTPException(status_code=400, detail=f"Reservation '{code}' is {reservation.status}, not confirmada.")

            if as_utc(reservation.ends_at) < utcnow():
                reservation.status = "expirada"
                db.add(reservation)
                db.commit()
                logger.info(f"Reservation {code} expired before arrival")
                raise HTTPException(status_code=410, detail=f"Reservation '{code}' has expired.")

            if get_open_occupancy(reservation.lot_id, db, space_number=reservation.space_number):
                raise HTTPException(status_code=409, detail=f"Space {reservation.space_number} is currently occupied.")
            if get_open_occupancy(reservation.lot_id, db, plate=reservation.plate):
                raise HTTPException(status_code=400, detail=f"Vehicle '{reservation.plate}' is already parked in this lot.")

            occupancy = Occupancy(
                lot_id=reservation.lot_id,
                space_number=reservation.space_number,
                plate=reservation.plate,
                entry_time=utcnow(),
                duration_type="hora",
                agreed_price=reservation.price,
                reservation_code=reservation.code,
                payment_id=reservation.payment_id,
            )
            reservation.status = "activa"
            db.add(occupancy)
            db.add(reservation)
            db.flush()

            # the prepaid reservation payment now belongs to the stay
            payment = db.get(Payment, reservation.payment_id) if reservation.payment_id else None
            if payment:
                payment.occupancy_id = occupancy.id
                db.add(payment)
            db.commit()
            db.refresh(occupancy)
            logger.info(f"Reservation {code} arrived, occupancy {occupancy.id} opened")
            return GenericResponse(message=f"Arrival confirmed for reservation {code}.", data=occupancy.model_dump())

        except HTTPException as http_exc:
            raise http_exc

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"Internal server error while confirming arrival: {e}")

    @staticmethod
    def cancel_reservation(code: str, db: Session):
        try:
            reservation = _get_reservation_or_404(code, db)
            if reservation.status != "confirmada":
                raise HTTPException(status_code=400, detail=f"Reservation '{code}' is {reservation.status} and cannot be cancelled.")
            reservation.status = "cancelada"
            db.add(reservation)
            db.commit()
            logger.info(f"Reservation {code} cancelled")
            return GenericResponse(message=f"Reservation {code} cancelled.", data={"code": code, "status": "cancelada"})

        except HTTPException as http_exc:
            raise http_exc

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"Internal server error while cancelling reservation: {e}")

    @staticmethod
    def expire_reservations(db: Session):
        try:
            now = utcnow()
            confirmed = db.exec(select(Reservation).where(Reservation.status == "confirmada")).all()
            expired = [r for r in confirmed if as_utc(r.ends_at) < now]

            for reservation in expired:
                reservation.status = "expirada"
                db.add(reservation)
            db.commit()

            codes = [r.code for r in expired]
            if codes:
                logger.info(f"Reservations expired: {codes}")
            return GenericResponse(message=f"{len(codes)} reservations expired.", data={"expired": codes})

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"Internal server error while expiring reservations: {e}")
