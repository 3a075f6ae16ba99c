from fastapi import APIRouter, Depends
from parking_app.controllers.shift_controller import EmployeeController, ShiftController
from parking_app.models.parking_models import Employee, Shift
from parking_app.schemas.parking_schemas import EmployeeCreate, ShiftStartRequest, ShiftFinishRequest, GenericResponse
from typing import List, Dict, Any
from sqlmodel import Session
from parking_app.database import get_db


router = APIRouter()

# EMPLOYEES

@router.post("/empleados", response_model=Employee)
def create_employee(employee: EmployeeCreate, db: Session = Depends(get_db)):
    return EmployeeController.create_employee(employee, db)

@router.get("/empleados", response_model=List[Employee])
def read_employees(est_id: int, db: Session = Depends(get_db)):
    return EmployeeController.read_employees(est_id, db)


# SHIFTS

@router.post("/turnos/iniciar", response_model=GenericResponse)
def start_shift(request: ShiftStartRequest, db: Session = Depends(get_db)):
    return ShiftController.start_shift(request, db)

@router.put("/turnos/finalizar", response_model=GenericResponse)
def finish_shift(request: ShiftFinishRequest, db: Session = Depends(get_db)):
    return ShiftController.finish_shift(request, db)

@router.get("/turnos/estado", response_model=Dict[str, Any])
def read_shift_status(empleado_id: int, est_id: int, db: Session = Depends(get_db)):
    return ShiftController.read_shift_status(empleado_id, est_id, db)

@router.get("/turnos/historial", response_model=List[Shift])
def read_shift_history(est_id: int, db: Session = Depends(get_db)):
    return ShiftController.read_shift_history(est_id, db)
