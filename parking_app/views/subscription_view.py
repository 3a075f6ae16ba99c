from fastapi import APIRouter, Depends
from parking_app.controllers.subscription_controller import SubscriptionController
from parking_app.models.parking_models import Subscription
from parking_app.schemas.parking_schemas import SubscriptionCreate, SubscriptionExtendRequest, GenericResponse
from typing import List, Dict, Any, Optional
from sqlmodel import Session
from parking_app.database import get_db


router = APIRouter(prefix="/abonos")

@router.post("", response_model=GenericResponse)
def create_subscription(subscription: SubscriptionCreate, db: Session = Depends(get_db)):
    return SubscriptionController.create_subscription(subscription, db)

@router.get("", response_model=List[Subscription])
def read_subscriptions(est_id: int, estado: Optional[str] = None, db: Session = Depends(get_db)):
    return SubscriptionController.read_subscriptions(est_id, db, status=estado)

@router.post("/vencimientos", response_model=GenericResponse)
def process_expirations(db: Session = Depends(get_db)):
    return SubscriptionController.process_expirations(db)

@router.get("/{abo_id}", response_model=Dict[str, Any])
def read_subscription(abo_id: int, db: Session = Depends(get_db)):
    return SubscriptionController.read_subscription(abo_id, db)

@router.get("/{abo_id}/precio", response_model=Dict[str, Any])
def read_period_price(abo_id: int, tipo: Optional[str] = None, db: Session = Depends(get_db)):
    return SubscriptionController.read_period_price(abo_id, tipo, db)

@router.post("/{abo_id}/extender", response_model=GenericResponse)
def extend_subscription(abo_id: int, request: SubscriptionExtendRequest, db: Session = Depends(get_db)):
    return SubscriptionController.extend_subscription(abo_id, request, db)
