from fastapi import APIRouter, Depends
from parking_app.controllers.parking_controller import ParkingLotController, OccupancyController, PaymentController
from parking_app.models.parking_models import ParkingLot, RateTemplate, Space, Occupancy, Payment
from parking_app.schemas.parking_schemas import (
    ParkingLotCreate, RateTemplateCreate, SpaceCreate, VehicleEntryRequest, VehicleExitRequest,
    ParkedVehicleResponse, GenericResponse,
)
from typing import List, Dict, Any
from sqlmodel import Session
from parking_app.database import get_db


router = APIRouter()

@router.get("/")
def hello():
    return {"message": "Parking Lot Management"}


# LOTS, RATE TEMPLATES AND SPACES

@router.post("/estacionamientos", response_model=ParkingLot)
def create_parking_lot(parking_lot: ParkingLotCreate, db: Session = Depends(get_db)):
    return ParkingLotController.create_parking_lot(parking_lot, db)

@router.get("/estacionamientos", response_model=List[ParkingLot])
def read_parking_lots(db: Session = Depends(get_db)):
    return ParkingLotController.read_parking_lots(db)

@router.post("/estacionamientos/{est_id}/plantillas", response_model=RateTemplate)
def create_rate_template(est_id: int, template: RateTemplateCreate, db: Session = Depends(get_db)):
    return ParkingLotController.create_rate_template(est_id, template, db)

@router.get("/estacionamientos/{est_id}/plantillas", response_model=List[RateTemplate])
def read_rate_templates(est_id: int, db: Session = Depends(get_db)):
    return ParkingLotController.read_rate_templates(est_id, db)

@router.post("/estacionamientos/{est_id}/plazas", response_model=Space)
def create_space(est_id: int, space: SpaceCreate, db: Session = Depends(get_db)):
    return ParkingLotController.create_space(est_id, space, db)

@router.get("/estacionamientos/{est_id}/plazas", response_model=List[Space])
def read_spaces(est_id: int, db: Session = Depends(get_db)):
    return ParkingLotController.read_spaces(est_id, db)


# OCCUPANCY

@router.post("/ocupacion/ingreso", response_model=Occupancy)
def register_entry(entry: VehicleEntryRequest, db: Session = Depends(get_db)):
    return OccupancyController.register_entry(entry, db)

@router.post("/ocupacion/egreso", response_model=GenericResponse)
def register_exit(request: VehicleExitRequest, db: Session = Depends(get_db)):
    return OccupancyController.register_exit(request, db)

@router.get("/ocupacion", response_model=List[ParkedVehicleResponse])
def read_parked_vehicles(est_id: int, db: Session = Depends(get_db)):
    return OccupancyController.read_parked_vehicles(est_id, db)

@router.get("/ocupacion/estado", response_model=Dict[str, Any])
def read_occupancy_status(est_id: int, db: Session = Depends(get_db)):
    return OccupancyController.read_occupancy_status(est_id, db)

@router.get("/ocupacion/historial", response_model=List[Dict[str, Any]])
def read_occupancy_history(est_id: int, db: Session = Depends(get_db)):
    return OccupancyController.read_occupancy_history(est_id, db)


# PAYMENTS

@router.get("/pagos", response_model=List[Payment])
def read_payments(est_id: int, db: Session = Depends(get_db)):
    return PaymentController.read_payments(est_id, db)
