# File: parkbook/application/dtos.py
"""
Data Transfer Objects (DTOs) for the Parking Booking Ledger

This module defines DTOs for data transfer between layers:
1. Input DTOs - validated requests from the presentation layer
2. Output DTOs - read projections handed back for rendering

DTO Principles:
- Validation at creation (pydantic)
- No business logic, only data and conversion to domain value objects
- pydantic errors are re-raised as the ledger's ValidationError via parse_dto()
"""

from typing import Dict, List, Optional, Any, Type, TypeVar
from datetime import datetime
from decimal import Decimal
import json

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from ..domain.errors import ValidationError
from ..domain.models import (
    GeoLocation, WeekdaySchedule, OperatingHours, PriceRule, Booking,
    VehicleType, ParkingType, ParkingFeature, TimeBand, Weekday, PaymentStatus
)
from ..domain.strategies import SortKey

DTO = TypeVar('DTO', bound='BaseDTO')


# ============================================================================
# BASE DTO CLASSES
# ============================================================================

class BaseDTO(BaseModel):
    """Base DTO with common functionality"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_dict(self, exclude_none: bool = False, **kwargs) -> Dict[str, Any]:
        return self.model_dump(exclude_none=exclude_none, **kwargs)

    def to_json(self, **kwargs) -> str:
        return self.model_dump_json(**kwargs)

    @classmethod
    def from_dict(cls: Type[DTO], data: Dict[str, Any]) -> DTO:
        return parse_dto(cls, data)

    @classmethod
    def from_json(cls: Type[DTO], json_str: str) -> DTO:
        return parse_dto(cls, json.loads(json_str))


def parse_dto(dto_class: Type[DTO], data: Any) -> DTO:
    """
    Build a DTO from a dict (or return an existing instance)
    Raises: ValidationError carrying pydantic's error list
    """
    if isinstance(data, dto_class):
        return data

    try:
        return dto_class.model_validate(data)
    except PydanticValidationError as e:
        errors = e.errors(include_url=False)
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "input" for err in errors)
        raise ValidationError(f"Invalid {dto_class.__name__}: {fields}", errors=errors) from e


# ============================================================================
# LOCATION INPUT DTOs
# ============================================================================

class GeoLocationDTO(BaseDTO):
    address: str = Field(min_length=1, description="Street address")
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "USA"
    latitude: float = Field(default=0.0, ge=-90, le=90)
    longitude: float = Field(default=0.0, ge=-180, le=180)

    def to_domain(self) -> GeoLocation:
        return GeoLocation(**self.model_dump())


class WeekdayScheduleDTO(BaseDTO):
    day: Weekday
    is_open: bool = True
    open_time: str = Field(default="06:00", pattern=r'^([01]\d|2[0-3]):[0-5]\d$')
    close_time: str = Field(default="22:00", pattern=r'^([01]\d|2[0-3]):[0-5]\d$')

    def to_domain(self) -> WeekdaySchedule:
        return WeekdaySchedule(self.day, self.is_open, self.open_time, self.close_time)


class OperatingHoursDTO(BaseDTO):
    default_open: str = Field(default="06:00", pattern=r'^([01]\d|2[0-3]):[0-5]\d$')
    default_close: str = Field(default="22:00", pattern=r'^([01]\d|2[0-3]):[0-5]\d$')
    weekday_schedule: List[WeekdayScheduleDTO] = Field(default_factory=list)

    def to_domain(self) -> OperatingHours:
        if not self.weekday_schedule:
            return OperatingHours.every_day(self.default_open, self.default_close)
        return OperatingHours(
            default_open=self.default_open,
            default_close=self.default_close,
            weekday_schedule=tuple(entry.to_domain() for entry in self.weekday_schedule),
        )


class PriceRuleDTO(BaseDTO):
    id: Optional[str] = None
    name: str = Field(min_length=1)
    vehicle_type: VehicleType = VehicleType.CAR
    time_band: TimeBand = Field(default=TimeBand.PEAK, alias="time_slot")
    start_time: str = Field(default="08:00", pattern=r'^([01]\d|2[0-3]):[0-5]\d$')
    end_time: str = Field(default="18:00", pattern=r'^([01]\d|2[0-3]):[0-5]\d$')
    hourly_rate: Decimal = Field(ge=0)
    daily_rate: Decimal = Field(ge=0)
    weekly_rate: Optional[Decimal] = Field(default=None, ge=0)
    monthly_rate: Optional[Decimal] = Field(default=None, ge=0)

    def to_domain(self) -> PriceRule:
        data = self.model_dump(exclude={"id"})
        if self.id:
            data["id"] = self.id
        return PriceRule(**data)


class LocationCreateDTO(BaseDTO):
    """Dealer request to create a parking location"""
    name: str = Field(min_length=1, max_length=100)
    geo_location: GeoLocationDTO
    parking_type: ParkingType = ParkingType.OUTDOOR
    contact_primary: str = Field(min_length=1)
    contact_secondary: Optional[str] = None
    features: List[ParkingFeature] = Field(default_factory=list)
    total_slots: int = Field(ge=1, le=1000)
    operating_hours: OperatingHoursDTO = Field(default_factory=OperatingHoursDTO)
    price_rules: List[PriceRuleDTO] = Field(min_length=1)

    @field_validator('features', mode='before')
    @classmethod
    def dedupe_features(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return v
        seen: List[Any] = []
        for feature in v:
            if isinstance(feature, str):
                feature = feature.strip()
            if feature and feature not in seen:
                seen.append(feature)
        return seen

    @field_validator('contact_secondary')
    @classmethod
    def blank_secondary_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


# ============================================================================
# BOOKING INPUT DTOs
# ============================================================================

class BookingRequestDTO(BaseDTO):
    """Customer request to book a slot"""
    user_id: str = Field(min_length=1)
    location_id: str = Field(min_length=1)
    slot_id: str = Field(min_length=1)
    start_time: datetime
    end_time: datetime
    vehicle_number: Optional[str] = Field(default=None, max_length=20)
    payment_status: PaymentStatus = PaymentStatus.PAID

    @field_validator('vehicle_number')
    @classmethod
    def normalise_vehicle_number(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else None

    @field_validator('start_time', 'end_time')
    @classmethod
    def to_local_naive(cls, v: datetime) -> datetime:
        # Ledger clock is naive local time
        if v.tzinfo is not None:
            return v.astimezone().replace(tzinfo=None)
        return v

    @model_validator(mode='after')
    def check_time_range(self) -> 'BookingRequestDTO':
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class LocationSearchDTO(BaseDTO):
    query: str = ""
    sort_by: SortKey = SortKey.DISTANCE
    origin_latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    origin_longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    include_inactive: bool = False

    @property
    def origin(self):
        if self.origin_latitude is None or self.origin_longitude is None:
            return None
        return (self.origin_latitude, self.origin_longitude)


# ============================================================================
# OUTPUT DTOs
# ============================================================================

class LocationSummaryDTO(BaseDTO):
    id: str
    name: str
    address: str
    parking_type: ParkingType
    features: List[ParkingFeature]
    total_slots: int
    available_slots: int
    lowest_price: Decimal
    distance_km: Optional[float] = None


class BookingDTO(BaseDTO):
    id: str
    user_id: str
    location_id: str
    location_name: str
    slot_id: str
    slot_number: int
    start_time: datetime
    end_time: datetime
    billable_hours: int
    total_amount: Decimal
    status: str
    payment_status: PaymentStatus
    vehicle_type: VehicleType
    vehicle_number: Optional[str] = None
    can_cancel: bool = False

    @classmethod
    def from_booking(cls, booking: Booking, now: datetime, cancellation_window=None) -> 'BookingDTO':
        kwargs = {} if cancellation_window is None else {"window": cancellation_window}
        return cls(
            id=booking.id,
            user_id=booking.user_id,
            location_id=booking.location_id,
            location_name=booking.location_name,
            slot_id=booking.slot_id,
            slot_number=booking.slot_number,
            start_time=booking.start_time,
            end_time=booking.end_time,
            billable_hours=booking.billable_hours,
            total_amount=booking.total_amount,
            status=booking.effective_status(now).value,
            payment_status=booking.payment_status,
            vehicle_type=booking.vehicle_type,
            vehicle_number=booking.vehicle_number,
            can_cancel=booking.can_cancel(now, **kwargs),
        )


class LocationOccupancyDTO(BaseDTO):
    """Slot breakdown for one location on the dealer dashboard"""
    location_id: str
    name: str
    total_slots: int
    available_slots: int
    booked_slots: int
    disabled_slots: int
    occupancy_rate: float

    @classmethod
    def from_location(cls, location) -> 'LocationOccupancyDTO':
        counts = location.get_status_counts()
        return cls(
            location_id=location.id,
            name=location.name,
            total_slots=location.total_slots,
            available_slots=counts["available"],
            booked_slots=counts["booked"],
            disabled_slots=counts["disabled"],
            occupancy_rate=round(location.get_occupancy_rate() * 100, 1),
        )


class DashboardDTO(BaseDTO):
    """Dealer overview across all locations"""
    total_locations: int
    total_slots: int
    available_slots: int
    booked_slots: int
    disabled_slots: int
    occupancy_rate: float = Field(description="Percentage of slots not available")
    todays_bookings: int
    active_bookings: int
    total_revenue: Decimal
    generated_at: datetime
    locations: List[LocationOccupancyDTO] = Field(default_factory=list)
