"""
Typed records passed between the web layer, the booking helpers and the database.

Rows coming out of the database are mapped into these with the from_row() constructors so the rest of the app never deals with DictRow objects or column names.
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional


class Role(str, Enum):
    CLIENT = 'client'
    ADMIN = 'admin'


class AppointmentStatus(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


@dataclass(frozen=True)
class Principal:
    id: str
    name: str
    phone: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "phone": self.phone, "role": self.role.value}

    @classmethod
    def from_dict(cls, data: dict) -> "Principal":
        return cls(id=str(data['id']), name=data['name'], phone=data.get('phone', ''), role=Role(data['role']))


@dataclass(frozen=True)
class Service:
    id: str
    title: str
    description: str
    price: float
    duration_minutes: int
    image_url: str

    @classmethod
    def from_row(cls, row) -> "Service":
        return cls(id=str(row['id']),
                   title=row['title'],
                   description=row['description'] or '',
                   price=float(row['price']),
                   duration_minutes=int(row['duration_minutes']),
                   image_url=row['image_url'] or '')


@dataclass(frozen=True)
class Appointment:
    id: str
    service_id: Optional[str]
    user_id: Optional[str]
    date: str  # YYYY-MM-DD
    time: str  # HH:MM
    status: AppointmentStatus
    # Joined display fields, only filled by the admin listing
    service_title: Optional[str] = None
    user_name: Optional[str] = None
    user_phone: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "Appointment":
        keys = row.keys()
        return cls(id=str(row['id']),
                   service_id=str(row['service_id']) if row['service_id'] is not None else None,
                   user_id=str(row['user_id']) if row['user_id'] is not None else None,
                   date=row['date'],
                   time=row['time'],
                   status=AppointmentStatus(row['status']),
                   service_title=row['service_title'] if 'service_title' in keys else None,
                   user_name=row['user_name'] if 'user_name' in keys else None,
                   user_phone=row['user_phone'] if 'user_phone' in keys else None)


@dataclass(frozen=True)
class TimeSlot:
    time: str
    available: bool

    def to_dict(self) -> dict:
        return asdict(self)


# Form payloads. Built by booking_utils from request.form after sanitizing.

@dataclass(frozen=True)
class BookingSelection:
    service_id: str
    date: str
    time: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "BookingSelection":
        return cls(service_id=data['service_id'], date=data['date'], time=data['time'])


@dataclass(frozen=True)
class RegistrationForm:
    name: str
    phone: str
    password: str


@dataclass(frozen=True)
class ServiceForm:
    title: str
    description: str
    price: float
    duration_minutes: int
    image_url: str


@dataclass(frozen=True)
class ServiceUpdate:
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    duration_minutes: Optional[int] = None
    image_url: Optional[str] = None

    def changed_fields(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class AppointmentUpdate:
    service_id: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    status: Optional[AppointmentStatus] = None

    def changed_fields(self) -> dict:
        fields = {k: v for k, v in asdict(self).items() if v is not None}
        if 'status' in fields:
            fields['status'] = fields['status'].value
        return fields

