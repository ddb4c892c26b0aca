"""
Database Schemas for the car park booking app

Each Pydantic model mirrors a MongoDB collection or a record of the live
availability feed. Stored field names are camelCase (the wire format of the
mobile client); models expose snake_case attributes through aliases.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BookingStatus(str, Enum):
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not BookingStatus.ONGOING


class BookingDate(str, Enum):
    TODAY = "Today"
    TOMORROW = "Tomorrow"


class Booking(BaseModel):
    """
    Bookings collection schema
    Collection name: "bookings"
    """
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(None, description="Repository-assigned identifier")
    car_park_no: str = Field(..., alias="carParkNo", description="Car park identifier")
    address: str = Field("", description="Car park address, denormalised for display")
    date: str = Field(BookingDate.TODAY.value, description="'Today' or 'Tomorrow', relative to booking time")
    hours_from: str = Field("", alias="hoursFrom", description="Start hour of day, 0-23")
    hours_to: str = Field("", alias="hoursTo", description="End hour of day, 0-23")
    user_email: str = Field(..., alias="userEmail")
    status: BookingStatus = Field(BookingStatus.ONGOING, description="Booking lifecycle state")
    booked_at: Optional[datetime] = Field(None, alias="bookedAt")

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        # Documents written before status existed are ongoing.
        if value is None or value == "":
            return BookingStatus.ONGOING
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("hours_from", "hours_to", "date", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, int):
            return str(value)
        return value

    @property
    def start_hour(self) -> int:
        return int(self.hours_from)

    @property
    def end_hour(self) -> int:
        return int(self.hours_to)

    @property
    def is_today(self) -> bool:
        return self.date == BookingDate.TODAY.value

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Booking":
        data = dict(doc)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(by_alias=True, exclude={"id"}, exclude_none=True)
        doc["status"] = self.status.value
        return doc


class User(BaseModel):
    """
    Users collection schema
    Collection name: "users" (document key is the email address)
    """
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(..., description="Email address, also the document key")
    full_name: str = Field("", alias="fullName")
    phone_number: str = Field("", alias="phoneNumber")
    country: str = Field("", description="Vehicle registration country")
    vehicle_no: str = Field("", alias="vehicleNo")
    iu_no: str = Field("", alias="iuNo", description="In-vehicle unit number")
    avatar_index: Optional[int] = Field(None, alias="avatarIndex")
    must_change_password: Optional[bool] = Field(None, alias="mustChangePassword")


class CarPark(BaseModel):
    """
    Car parks collection schema
    Collection name: "carparks"
    """
    car_park_no: str = Field(..., description="Car park identifier, e.g. 'ACB'")
    address: str = Field("", description="Street address")
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    car_park_type: Optional[str] = None
    type_of_parking_system: Optional[str] = None
    short_term_parking: Optional[str] = None
    free_parking: Optional[str] = None
    night_parking: Optional[str] = None


class CarParkInfo(BaseModel):
    """Lot counts for one lot type; the live feed carries them as strings."""
    total_lots: str = "0"
    lots_available: str = "0"
    lot_type: str = "C"

    @field_validator("total_lots", "lots_available", mode="before")
    @classmethod
    def _count_as_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str) or not value.strip().isdigit():
            raise ValueError("lot counts must be whole numbers")
        return value.strip()


class AvailabilitySnapshot(BaseModel):
    """Live availability for one car park as published by the feed."""
    carpark_number: Optional[str] = None
    update_datetime: Optional[str] = None
    carpark_info: List[CarParkInfo] = Field(default_factory=list)

    @property
    def lots_available(self) -> Optional[int]:
        if not self.carpark_info:
            return None
        return int(self.carpark_info[0].lots_available)

    @property
    def total_lots(self) -> Optional[int]:
        if not self.carpark_info:
            return None
        return int(self.carpark_info[0].total_lots)


class BookingReceipt(BaseModel):
    booking_id: Optional[str] = None
    address: str = ""
    date: str = BookingDate.TODAY.value
    availability: Optional[AvailabilitySnapshot] = None

    @property
    def message(self) -> str:
        return f"Your parking spot at {self.address} has been booked for {self.date}!"
