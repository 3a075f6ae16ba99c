import logging
from sqlmodel import Session, select
from fastapi import HTTPException
from parking_app.controllers.parking_controller import get_lot_or_404
from parking_app.models.parking_models import Employee, Shift, Payment
from parking_app.schemas.parking_schemas import EmployeeCreate, ShiftStartRequest, ShiftFinishRequest, GenericResponse
from parking_app.utils.calculation import as_utc, local_date, utcnow

logger = logging.getLogger(__name__)


def _active_employee_or_404(employee_id: int, lot_id: int, db: Session) -> Employee:
    employee = db.get(Employee, employee_id)
    if not employee or employee.lot_id != lot_id or not employee.active:
        raise HTTPException(status_code=404, detail="Employee not found or inactive in this parking lot.")
    return employee


def _active_shift(employee_id: int, lot_id: int, db: Session):
    return db.exec(select(Shift).where(
        Shift.employee_id == employee_id, Shift.lot_id == lot_id, Shift.status == "activo"
    )).first()


def summarize_shift_payments(shift: Shift, payments) -> dict:
    """Totals collected in the lot while the shift was open."""
    started_at = as_utc(shift.started_at)
    ended_at = as_utc(shift.ended_at) if shift.ended_at else utcnow()

    by_method = {}
    total = 0.0
    count = 0
    for payment in payments:
        if not started_at <= as_utc(payment.paid_at) <= ended_at:
            continue
        by_method[payment.method] = by_method.get(payment.method, 0.0) + payment.amount
        total += payment.amount
        count += 1

    expected_cash = (shift.opening_cash or 0) + by_method.get("Efectivo", 0.0)
    summary = {
        "payments": count,
        "total": total,
        "by_method": by_method,
        "expected_cash": expected_cash,
    }
    if shift.closing_cash is not None:
        summary["cash_difference"] = shift.closing_cash - expected_cash
    return summary


class EmployeeController:
    @staticmethod
    def create_employee(employee: EmployeeCreate, db: Session):
        try:
            get_lot_or_404(employee.lot_id, db)
            new_employee = Employee(lot_id=employee.lot_id, name=employee.name, active=True)
            db.add(new_employee)
            db.commit()
            db.refresh(new_employee)
            return new_employee

        except HTTPException as http_exc:
            raise http_exc

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"Internal server error while creating employee: {e}")

    @staticmethod
    def read_employees(lot_id: int, db: Session):
        try:
            get_lot_or_404(lot_id, db)
            return db.exec(select(Employee).where(Employee.lot_id == lot_id).order_by(Employee.id)).all()
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_employees: {e}")


class ShiftController:
    @staticmethod
    def start_shift(request: ShiftStartRequest, db: Session):
        try:
            employee = _active_employee_or_404(request.employee_id, request.lot_id, db)

            if _active_shift(employee.id, request.lot_id, db):
                raise HTTPException(status_code=400, detail="The employee already has an active shift.")

            shift = Shift(
                employee_id=employee.id,
                lot_id=request.lot_id,
                started_at=utcnow(),
                status="activo",
                opening_cash=request.opening_cash,
                entry_notes=request.notes,
            )
            db.add(shift)
            db.commit()
            db.refresh(shift)
            logger.info(f"Shift {shift.id} started by employee {employee.id} in lot {request.lot_id}")
            return GenericResponse(message="Shift started successfully", data=shift.model_dump())

        except HTTPException as http_exc:
            raise http_exc

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"Internal server error while starting shift: {e}")

    @staticmethod
    def finish_shift(request: ShiftFinishRequest, db: Session):
        try:
            shift = db.exec(select(Shift).where(Shift.id == request.shift_id, Shift.status == "activo")).first()
            if not shift:
                raise HTTPException(status_code=404, detail="Shift not found or already finished.")

            shift.ended_at = utcnow()
            shift.status = "finalizado"
            shift.closing_cash = request.closing_cash
            shift.exit_notes = request.notes
            db.add(shift)
            db.commit()
            db.refresh(shift)

            payments = db.exec(select(Payment).where(Payment.lot_id == shift.lot_id)).all()
            summary = summarize_shift_payments(shift, payments)
            logger.info(f"Shift {shift.id} finished, collected {summary['total']}")
            return GenericResponse(
                message="Shift finished successfully",
                data={"shift": shift.model_dump(), "summary": summary},
            )

        except HTTPException as http_exc:
            raise http_exc

        except Exception as e:
            db.rollback()
            raise HTTPException(status_code=500, detail=f"Internal server error while finishing shift: {e}")

    @staticmethod
    def read_shift_status(employee_id: int, lot_id: int, db: Session):
        try:
            _active_employee_or_404(employee_id, lot_id, db)
            shifts = db.exec(select(Shift).where(Shift.employee_id == employee_id, Shift.lot_id == lot_id)
                             .order_by(Shift.started_at.desc())).all()

            active = next((s for s in shifts if s.status == "activo"), None)
            today = local_date()
            return {
                "active_shift": active.model_dump() if active else None,
                "today": [s.model_dump() for s in shifts if local_date(s.started_at) == today],
            }

        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_shift_status: {e}")

    @staticmethod
    def read_shift_history(lot_id: int, db: Session):
        try:
            get_lot_or_404(lot_id, db)
            return db.exec(select(Shift).where(Shift.lot_id == lot_id)
                           .order_by(Shift.started_at.desc(), Shift.id.desc())).all()
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"An error occured in read_shift_history: {e}")
