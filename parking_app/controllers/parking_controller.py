import logging
from sqlmodel import Session, select
from fastapi import HTTPException
from sqlalchemy import text
from parking_app.models.parking_models import (
    ParkingLot, RateTemplate, Space, TariffEntry, Occupancy, Payment, Subscription, Reservation,
)
from parking_app.schemas.parking_schemas import (
    ParkingLotCreate, RateTemplateCreate, SpaceCreate, VehicleEntryRequest, VehicleExitRequest,
    ParkedVehicleResponse, OccupancyExitResponse, GenericResponse,
)
from parking_app.utils.calculation import (
    aggregate_occupancy, aggregate_by_zone, calculate_period_fee, duration_type_code,
    as_utc, format_local_time, resolve_tariff_price, utcnow,
)
from parking_app.utils.errors import TariffNotFoundError, InvalidPeriodTypeError

logger = logging.getLogger(__name__)

# reservation states that still hold the space
RESERVATION_HOLDING_STATES = ("confirmada", "activa")

PAYMENT_METHOD_LABELS = {
    "efectivo": "Efectivo",
    "transferencia": "Transferencia",
    "tarjeta": "MercadoPago",
    "mercadopago": "MercadoPago",
}


def payment_method_label(method: str) -> str:
    return PAYMENT_METHOD_LABELS.get((method or "").lower(), "Efectivo")


def get_lot_or_404(lot_id: int, db: Session) -> ParkingLot:
    lot = db.get(ParkingLot, lot_id)
    if not lot:
        raise HTTPException(status_code=404, detail=f"Parking lot {lot_id} does not exist.")
    return lot


def get_space_or_404(lot_id: int, number: int, db: Session) -> Space:
    space = db.exec(select(Space).where(Space.lot_id == lot_id, Space.number == number)).first()
    if not space:
        raise HTTPException(status_code=404, detail=f"Space {number} does not exist in parking lot {lot_id}.")
    return space


def get_open_occupancy(lot_id: int, db: Session, space_number: int = None, plate: str = None):
    query = select(Occupancy).where(Occupancy.lot_id == lot_id, Occupancy.exit_time == None)  # noqa: E711
    if space_number is not None:
        query = query.where(Occupancy.space_number == space_number)
    if plate is not None:
        query = query.where(Occupancy.plate == plate)
    return db.exec(query).first()


class ParkingLotController:
    @staticmethod
    def create_parking_lot(parking_lot: ParkingLotCreate, db: Session):
        try:
            query = text("SELECT id FROM parkinglot WHERE name = :name")
            existing_lot = db.execute(query, {"name": parking_lot.name}).fetchone()
            if existing_lot:
                raise HTTPException(status_code=400, detail="A parking lot with this name already exists.")

            new_lot = ParkingLot(name=parking_lot.name, address=parking_lot.address, capacity=parking_lot.capacity)
            db.add(new_lot)
            db.commit()
            db.refresh(new_lot)
            logger.info(f"Parking lot {new_lot.id} '{new_lot.name}' created")
            return new_lot

        except HTTPException as http_exc:
            raise http_exc

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"Internal server error while creating parking lot: {e}")

    @staticmethod
    def read_parking_lots(db: Session):
        try:
            return db.exec(select(ParkingLot).order_by(ParkingLot.id)).all()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_parking_lots: {e}")

    @staticmethod
    def create_rate_template(lot_id: int, template: RateTemplateCreate, db: Session):
        try:
            get_lot_or_404(lot_id, db)
            new_template = RateTemplate(lot_id=lot_id, name=template.name, segment=template.segment)
            db.add(new_template)
            db.commit()
            db.refresh(new_template)
            return new_template

        except HTTPException as http_exc:
            raise http_exc

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"Internal server error while creating rate template: {e}")

    @staticmethod
    def read_rate_templates(lot_id: int, db: Session):
        try:
            get_lot_or_404(lot_id, db)
            return db.exec(select(RateTemplate).where(RateTemplate.lot_id == lot_id).order_by(RateTemplate.id)).all()
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_rate_templates: {e}")

    @staticmethod
    def create_space(lot_id: int, space: SpaceCreate, db: Session):
        try:
            get_lot_or_404(lot_id, db)

            query = text("SELECT id FROM space WHERE lot_id = :lot_id AND number = :number")
            existing_space = db.execute(query, {"lot_id": lot_id, "number": space.number}).fetchone()
            if existing_space:
                raise HTTPException(status_code=400, detail=f"Space {space.number} already exists in this parking lot.")

            if space.template_id is not None:
                template = db.get(RateTemplate, space.template_id)
                if not template or template.lot_id != lot_id:
                    raise HTTPException(status_code=404, detail=f"Rate template {space.template_id} does not exist in this parking lot.")
                if template.segment != space.segment:
                    raise HTTPException(status_code=400, detail=f"Rate template '{template.name}' is for segment {template.segment}, not {space.segment}.")

            new_space = Space(lot_id=lot_id, number=space.number, segment=space.segment,
                              template_id=space.template_id, zone=space.zone)
            db.add(new_space)
            db.commit()
            db.refresh(new_space)
            return new_space

        except HTTPException as http_exc:
            raise http_exc

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"Internal server error while creating space: {e}")

    @staticmethod
    def read_spaces(lot_id: int, db: Session):
        try:
            get_lot_or_404(lot_id, db)
            return db.exec(select(Space).where(Space.lot_id == lot_id).order_by(Space.number)).all()
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_spaces: {e}")


class OccupancyController:
    @staticmethod
    def register_entry(entry: VehicleEntryRequest, db: Session):
        try:
            get_lot_or_404(entry.lot_id, db)
            space = get_space_or_404(entry.lot_id, entry.space_number, db)
            plate = entry.plate.strip().upper()

            if get_open_occupancy(entry.lot_id, db, space_number=space.number):
                raise HTTPException(status_code=400, detail=f"Space {space.number} is already occupied.")

            if get_open_occupancy(entry.lot_id, db, plate=plate):
                raise HTTPException(status_code=400, detail=f"Vehicle '{plate}' is already parked in this lot.")

            subscription = db.exec(select(Subscription).where(
                Subscription.lot_id == entry.lot_id,
                Subscription.space_number == space.number,
                Subscription.status == "activo",
            )).first()
            if subscription and subscription.plate != plate:
                raise HTTPException(status_code=400, detail=f"Space {space.number} is assigned to a subscription.")

            now = utcnow()
            reservations = db.exec(select(Reservation).where(
                Reservation.lot_id == entry.lot_id,
                Reservation.space_number == space.number,
                Reservation.status.in_(RESERVATION_HOLDING_STATES),
            )).all()
            if any(r.plate != plate and as_utc(r.starts_at) <= now < as_utc(r.ends_at) for r in reservations):
                raise HTTPException(status_code=400, detail=f"Space {space.number} is reserved right now.")

            occupancy = Occupancy(
                lot_id=entry.lot_id,
                space_number=space.number,
                plate=plate,
                entry_time=now,
                duration_type=entry.duration_type,
                agreed_price=entry.agreed_price,
            )
            db.add(occupancy)
            db.commit()
            db.refresh(occupancy)
            logger.info(f"Vehicle '{plate}' entered lot {entry.lot_id} at space {space.number}")
            return occupancy

        except HTTPException as http_exc:
            raise http_exc

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"Internal server error while registering entry: {e}")

    @staticmethod
    def register_exit(request: VehicleExitRequest, db: Session):
        try:
            plate = request.plate.strip().upper()
            occupancy = get_open_occupancy(request.lot_id, db, plate=plate)
            if not occupancy:
                raise HTTPException(status_code=404, detail=f"Vehicle '{plate}' is not parked in parking lot {request.lot_id}.")

            space = get_space_or_404(request.lot_id, occupancy.space_number, db)
            if space.template_id is None:
                raise HTTPException(status_code=400, detail=f"Space {space.number} has no rate template assigned.")

            period_code = duration_type_code(occupancy.duration_type)
            exit_time = utcnow()
            tariffs = db.exec(select(TariffEntry).where(
                TariffEntry.lot_id == request.lot_id,
                TariffEntry.template_id == space.template_id,
            )).all()
            unit_price = resolve_tariff_price(tariffs, request.lot_id, period_code,
                                              template_id=space.template_id, now=exit_time)

            breakdown = calculate_period_fee(occupancy.entry_time, exit_time, unit_price, period_code)
            agreed_price = occupancy.agreed_price or 0
            fee = max(breakdown.fee, agreed_price)

            # a reservation payment linked at arrival is already collected
            prepaid_payment = db.get(Payment, occupancy.payment_id) if occupancy.payment_id else None
            prepaid = prepaid_payment.amount if prepaid_payment else 0.0
            amount_due = max(0.0, fee - prepaid)

            occupancy.exit_time = exit_time
            if amount_due > 0:
                payment = Payment(
                    lot_id=request.lot_id,
                    amount=amount_due,
                    paid_at=exit_time,
                    method=payment_method_label(request.payment_method),
                    plate=plate,
                    kind="occupancy",
                    description=f"{breakdown.units} x {occupancy.duration_type}",
                    occupancy_id=occupancy.id,
                )
                db.add(payment)
                db.flush()
                occupancy.payment_id = payment.id
            db.add(occupancy)

            if occupancy.reservation_code:
                reservation = db.exec(select(Reservation).where(Reservation.code == occupancy.reservation_code)).first()
                if reservation and reservation.status == "activa":
                    reservation.status = "completada"
                    db.add(reservation)

            db.commit()
            logger.info(f"Vehicle '{plate}' left lot {request.lot_id} from space {space.number}, fee {fee}, due {amount_due}")

            exit_response = OccupancyExitResponse(
                id=occupancy.id,
                plate=plate,
                space_number=occupancy.space_number,
                entry_time=format_local_time(occupancy.entry_time),
                exit_time=format_local_time(exit_time),
                units=breakdown.units,
                unit_price=unit_price,
                calculated_fee=breakdown.fee,
                agreed_price=agreed_price,
                fee=fee,
                prepaid=prepaid,
                amount_due=amount_due,
                payment_id=occupancy.payment_id,
            )
            return GenericResponse(
                message=f"Vehicle '{plate}' has successfully exited from space {space.number}. The parking fee is {fee}, {amount_due} due.",
                data=exit_response,
            )

        except HTTPException as http_exc:
            raise http_exc

        except TariffNotFoundError as e:
            db.rollback()
            raise HTTPException(status_code=404, detail=str(e))

        except InvalidPeriodTypeError as e:
            db.rollback()
            raise HTTPException(status_code=400, detail=str(e))

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"An error occured while registering exit: {e}")

    @staticmethod
    def read_parked_vehicles(lot_id: int, db: Session):
        try:
            get_lot_or_404(lot_id, db)
            occupancies = db.exec(select(Occupancy).where(
                Occupancy.lot_id == lot_id, Occupancy.exit_time == None  # noqa: E711
            ).order_by(Occupancy.entry_time)).all()
            spaces = {s.number: s for s in db.exec(select(Space).where(Space.lot_id == lot_id)).all()}
            tariffs = db.exec(select(TariffEntry).where(TariffEntry.lot_id == lot_id)).all()

            now = utcnow()
            parked_vehicles = []
            for occupancy in occupancies:
                space = spaces.get(occupancy.space_number)
                estimated_fee = None
                # estimate stays empty when the space cannot be priced
                if space and space.template_id is not None:
                    try:
                        period_code = duration_type_code(occupancy.duration_type)
                        unit_price = resolve_tariff_price(tariffs, lot_id, period_code,
                                                          template_id=space.template_id, now=now)
                        breakdown = calculate_period_fee(occupancy.entry_time, now, unit_price, period_code)
                        estimated_fee = max(breakdown.fee, occupancy.agreed_price or 0)
                    except (TariffNotFoundError, InvalidPeriodTypeError):
                        estimated_fee = None

                parked_vehicles.append(ParkedVehicleResponse(
                    id=occupancy.id,
                    plate=occupancy.plate,
                    space_number=occupancy.space_number,
                    entry_time=format_local_time(occupancy.entry_time),
                    duration_type=occupancy.duration_type,
                    estimated_fee=estimated_fee,
                ))
            return parked_vehicles

        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_parked_vehicles: {e}")

    @staticmethod
    def read_occupancy_status(lot_id: int, db: Session):
        try:
            get_lot_or_404(lot_id, db)
            spaces = db.exec(select(Space).where(Space.lot_id == lot_id)).all()
            open_occupancies = db.exec(select(Occupancy).where(
                Occupancy.lot_id == lot_id, Occupancy.exit_time == None  # noqa: E711
            )).all()

            segments = aggregate_occupancy(spaces, open_occupancies)
            has_zones = any(space.zone for space in spaces)
            total = sum(stats["total"] for stats in segments.values())
            occupied = sum(stats["occupied"] for stats in segments.values())
            return {
                "lot_id": lot_id,
                "mode": "zones" if has_zones else "simple",
                "stats": {"total": total, "occupied": occupied, "free": max(0, total - occupied)},
                "segments": segments,
                "zones": aggregate_by_zone(spaces, open_occupancies) if has_zones else [],
            }

        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_occupancy_status: {e}")

    @staticmethod
    def read_occupancy_history(lot_id: int, db: Session):
        try:
            get_lot_or_404(lot_id, db)
            results = db.exec(
                select(Occupancy, Payment)
                .join(Payment, Occupancy.payment_id == Payment.id, isouter=True)
                .where(Occupancy.lot_id == lot_id, Occupancy.exit_time != None)  # noqa: E711
                .order_by(Occupancy.exit_time.desc())
            ).all()

            # a stay can hold a reservation prepayment plus the charge at exit
            paid = {}
            occupancy_ids = [occupancy.id for occupancy, _ in results]
            if occupancy_ids:
                for row in db.exec(select(Payment).where(Payment.occupancy_id.in_(occupancy_ids))).all():
                    paid[row.occupancy_id] = paid.get(row.occupancy_id, 0.0) + row.amount

            history = []
            for occupancy, payment in results:
                history.append({
                    "id": occupancy.id,
                    "plate": occupancy.plate,
                    "space_number": occupancy.space_number,
                    "entry_time": occupancy.entry_time,
                    "exit_time": occupancy.exit_time,
                    "duration_type": occupancy.duration_type,
                    "amount": paid.get(occupancy.id),
                    "payment_method": payment.method if payment else None,
                })
            return history

        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_occupancy_history: {e}")


class PaymentController:
    @staticmethod
    def read_payments(lot_id: int, db: Session):
        try:
            get_lot_or_404(lot_id, db)
            return db.exec(select(Payment).where(Payment.lot_id == lot_id)
                           .order_by(Payment.paid_at.desc(), Payment.id.desc())).all()
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_payments: {e}")
