from datetime import datetime, date
from sqlmodel import SQLModel, Field
from typing import Optional, Any, List, Literal

Segment = Literal["AUT", "MOT", "CAM"]
DurationType = Literal["hora", "dia", "semana", "mes"]
PaymentMethod = Literal["efectivo", "transferencia", "tarjeta", "mercadopago"]


# LOTS, TEMPLATES AND SPACES

class ParkingLotCreate(SQLModel):
    name: str = Field(min_length=1)
    address: Optional[str] = None
    capacity: int = Field(default=0, ge=0)

class RateTemplateCreate(SQLModel):
    name: str = Field(min_length=1)
    segment: Segment = "AUT"

class SpaceCreate(SQLModel):
    number: int = Field(ge=1)
    segment: Segment = "AUT"
    template_id: Optional[int] = None
    zone: Optional[str] = None


# TARIFFS

class TariffCreate(SQLModel):
    template_id: int
    period_type: int = Field(ge=1, le=4)
    price: float = Field(gt=0)
    effective_from: Optional[datetime] = None

class TariffBatchCreate(SQLModel):
    tariffs: List[TariffCreate]


# OCCUPANCY

class VehicleEntryRequest(SQLModel):
    lot_id: int
    space_number: int = Field(ge=1)
    plate: str = Field(min_length=1)
    duration_type: DurationType = "hora"
    agreed_price: float = Field(default=0, ge=0)

class VehicleExitRequest(SQLModel):
    lot_id: int
    plate: str = Field(min_length=1)
    payment_method: PaymentMethod = "efectivo"

class ParkedVehicleResponse(SQLModel):
    id: Optional[int]
    plate: str
    space_number: int
    entry_time: Optional[str]
    duration_type: str
    estimated_fee: Optional[float]

class OccupancyExitResponse(SQLModel):
    id: Optional[int]
    plate: str
    space_number: int
    entry_time: Optional[str]
    exit_time: Optional[str]
    units: int
    unit_price: float
    calculated_fee: float
    agreed_price: float
    fee: float
    prepaid: float = 0
    amount_due: float
    payment_id: Optional[int]


# SUBSCRIPTIONS

class SubscriptionCreate(SQLModel):
    lot_id: int
    space_number: int = Field(ge=1)
    holder_name: str = Field(min_length=1)
    plate: str = Field(min_length=1)
    period_type: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    start_date: Optional[date] = None
    payment_method: PaymentMethod = "efectivo"

class SubscriptionExtendRequest(SQLModel):
    period_type: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    payment_method: PaymentMethod = "efectivo"
    note: Optional[str] = None


# EMPLOYEES AND SHIFTS

class EmployeeCreate(SQLModel):
    lot_id: int
    name: str = Field(min_length=1)

class ShiftStartRequest(SQLModel):
    employee_id: int
    lot_id: int
    opening_cash: float = Field(ge=0)
    notes: Optional[str] = None

class ShiftFinishRequest(SQLModel):
    shift_id: int
    closing_cash: float = Field(ge=0)
    notes: Optional[str] = None


# RESERVATIONS

class ReservationCreate(SQLModel):
    lot_id: int
    space_number: int = Field(ge=1)
    plate: str = Field(min_length=1)
    starts_at: datetime
    hours: int
    payment_method: PaymentMethod = "transferencia"


class GenericResponse(SQLModel):
    message: Optional[str] = None
    data: Optional[Any] = None
