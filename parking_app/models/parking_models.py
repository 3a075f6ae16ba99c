from datetime import datetime, date
from typing import Optional
from sqlmodel import SQLModel, Field


class ParkingLot(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    address: Optional[str] = None
    capacity: int = 0


class RateTemplate(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    lot_id: int = Field(foreign_key="parkinglot.id", index=True)
    name: str
    segment: str = "AUT"


class Space(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    lot_id: int = Field(foreign_key="parkinglot.id", index=True)
    number: int
    segment: str = "AUT"
    template_id: Optional[int] = Field(default=None, foreign_key="ratetemplate.id")
    zone: Optional[str] = None


class TariffEntry(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    lot_id: int = Field(foreign_key="parkinglot.id", index=True)
    template_id: Optional[int] = Field(default=None, foreign_key="ratetemplate.id", index=True)
    segment: str = "AUT"
    period_type: int
    price: float
    effective_from: datetime


class Payment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    lot_id: int = Field(foreign_key="parkinglot.id", index=True)
    amount: float
    paid_at: datetime
    method: str = "Efectivo"
    plate: Optional[str] = None
    kind: str = "occupancy"
    description: Optional[str] = None
    occupancy_id: Optional[int] = None
    subscription_id: Optional[int] = None


class Occupancy(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    lot_id: int = Field(foreign_key="parkinglot.id", index=True)
    space_number: int
    plate: str = Field(index=True)
    entry_time: datetime
    exit_time: Optional[datetime] = None
    duration_type: str = "hora"
    agreed_price: float = 0
    payment_id: Optional[int] = Field(default=None, foreign_key="payment.id")
    reservation_code: Optional[str] = None


class Subscription(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    lot_id: int = Field(foreign_key="parkinglot.id", index=True)
    space_number: int
    holder_name: str
    plate: str
    period_type: str = "mensual"
    start_date: date
    end_date: date
    status: str = "activo"


class Employee(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    lot_id: int = Field(foreign_key="parkinglot.id", index=True)
    name: str
    active: bool = True


class Shift(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    employee_id: int = Field(foreign_key="employee.id", index=True)
    lot_id: int = Field(foreign_key="parkinglot.id", index=True)
    started_at: datetime
    ended_at: Optional[datetime] = None
    status: str = "activo"
    opening_cash: float = 0
    closing_cash: Optional[float] = None
    entry_notes: Optional[str] = None
    exit_notes: Optional[str] = None


class Reservation(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)
    lot_id: int = Field(foreign_key="parkinglot.id", index=True)
    space_number: int
    plate: str
    starts_at: datetime
    ends_at: datetime
    hours: int
    price: float
    payment_method: str
    payment_id: Optional[int] = Field(default=None, foreign_key="payment.id")
    status: str = "confirmada"
    created_at: datetime
