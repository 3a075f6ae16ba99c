from fastapi import APIRouter, Depends
from redis import Redis
from parking_app.controllers.reservation_controller import ReservationController
from parking_app.models.parking_models import Reservation
from parking_app.schemas.parking_schemas import ReservationCreate, GenericResponse
from typing import List
from sqlmodel import Session
from parking_app.database import get_db, get_redis


router = APIRouter(prefix="/reservas")

@router.post("", response_model=GenericResponse)
def create_reservation(reservation: ReservationCreate, db: Session = Depends(get_db),
                       redis_client: Redis = Depends(get_redis)):
    return ReservationController.create_reservation(reservation, db, redis_client)

@router.get("", response_model=List[Reservation])
def read_reservations(est_id: int, db: Session = Depends(get_db)):
    return ReservationController.read_reservations(est_id, db)

@router.post("/expirar", response_model=GenericResponse)
def expire_reservations(db: Session = Depends(get_db)):
    return ReservationController.expire_reservations(db)

@router.get("/{codigo}", response_model=Reservation)
def read_reservation(codigo: str, db: Session = Depends(get_db)):
    return ReservationController.read_reservation(codigo, db)

@router.post("/{codigo}/confirmar-llegada", response_model=GenericResponse)
def confirm_arrival(codigo: str, db: Session = Depends(get_db)):
    return ReservationController.confirm_arrival(codigo, db)

@router.post("/{codigo}/cancelar", response_model=GenericResponse)
def cancel_reservation(codigo: str, db: Session = Depends(get_db)):
    return ReservationController.cancel_reservation(codigo, db)
