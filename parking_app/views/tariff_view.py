from fastapi import APIRouter, Depends
from parking_app.controllers.tariff_controller import TariffController
from parking_app.models.parking_models import TariffEntry
from parking_app.schemas.parking_schemas import TariffBatchCreate, GenericResponse
from typing import List, Dict, Any, Optional
from sqlmodel import Session
from parking_app.database import get_db


router = APIRouter(prefix="/tarifas")

@router.get("", response_model=List[Dict[str, Any]])
def read_tariffs(est_id: int, db: Session = Depends(get_db)):
    return TariffController.read_tariffs(est_id, db)

@router.post("", response_model=GenericResponse)
def create_tariffs(est_id: int, batch: TariffBatchCreate, db: Session = Depends(get_db)):
    return TariffController.create_tariffs(est_id, batch, db)

@router.get("/vigente", response_model=TariffEntry)
def read_current_tariff(est_id: int, periodo: int, plantilla_id: Optional[int] = None,
                        segmento: Optional[str] = None, db: Session = Depends(get_db)):
    return TariffController.read_current_tariff(est_id, periodo, db, template_id=plantilla_id, segment=segmento)
