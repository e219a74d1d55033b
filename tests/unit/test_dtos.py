#!/usr/bin/env python3
"""
DTO Unit Tests

Request validation and conversion to domain value objects.
"""

import unittest
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

sys.path.append(str(Path(__file__).parent.parent.parent))

from parkbook.application.dtos import (
    BookingRequestDTO, LocationCreateDTO, LocationSearchDTO, OperatingHoursDTO,
    PriceRuleDTO, parse_dto
)
from parkbook.domain.errors import ValidationError
from parkbook.domain.models import OperatingHours, ParkingFeature, PaymentStatus, TimeBand, Weekday
from parkbook.domain.strategies import SortKey

START = datetime(2024, 6, 1, 14, 0)


class TestLocationCreateDTO(unittest.TestCase):

    def request(self, **overrides):
        data = {
            "name": "  Downtown Plaza  ",
            "geo_location": {"address": "123 Main St", "city": "New York"},
            "contact_primary": "+1 (555) 123-4567",
            "contact_secondary": "",
            "features": ["surveillance", "surveillance", "ev-charging", ""],
            "total_slots": 50,
            "price_rules": [{"name": "Car - Peak Hours", "time_slot": "peak",
                             "hourly_rate": 5, "daily_rate": 40}],
        }
        data.update(overrides)
        return data

    def test_valid_request(self):
        dto = LocationCreateDTO.from_dict(self.request())
        self.assertEqual(dto.name, "Downtown Plaza")
        self.assertEqual(dto.features, ["surveillance", "ev-charging"])
        self.assertIsNone(dto.contact_secondary)
        self.assertEqual(dto.price_rules[0].time_band, TimeBand.PEAK)
        self.assertEqual(dto.geo_location.to_domain().city, "New York")

    def test_unknown_feature_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            LocationCreateDTO.from_dict(self.request(features=["surveillance", "valet"]))
        self.assertEqual(ctx.exception.errors[0]["loc"][:2], ("features", 1))

    def test_features_are_catalog_members(self):
        dto = LocationCreateDTO.from_dict(self.request(features=[" wheelchair "]))
        self.assertEqual(dto.features, [ParkingFeature.WHEELCHAIR])

    def test_price_rule_conversion(self):
        rule = PriceRuleDTO(name="Car - Regular Hours", time_band="off-peak",
                            hourly_rate=Decimal('3'), daily_rate=25, monthly_rate=600).to_domain()
        self.assertEqual(rule.time_band, TimeBand.OFF_PEAK)
        self.assertEqual(rule.hourly_rate, Decimal('3.00'))
        self.assertEqual(rule.monthly_rate, Decimal('600.00'))

    def test_price_rule_id_kept_when_given(self):
        rule = PriceRuleDTO(id="rule-1", name="Car", hourly_rate=1, daily_rate=5).to_domain()
        self.assertEqual(rule.id, "rule-1")

    def test_operating_hours_default_to_every_day(self):
        hours = OperatingHoursDTO().to_domain()
        self.assertIsInstance(hours, OperatingHours)
        self.assertEqual(len(hours.weekday_schedule), 7)

    def test_operating_hours_schedule(self):
        hours = OperatingHoursDTO(weekday_schedule=[
            {"day": "sunday", "is_open": True, "open_time": "08:00", "close_time": "20:00"},
        ]).to_domain()
        self.assertEqual(hours.schedule_for(Weekday.SUNDAY).close_time, "20:00")
        self.assertEqual(hours.schedule_for(Weekday.MONDAY).close_time, "22:00")

    def test_bad_time_format(self):
        with self.assertRaises(ValidationError):
            parse_dto(OperatingHoursDTO, {"default_open": "6am"})

    def test_errors_are_converted(self):
        with self.assertRaises(ValidationError) as ctx:
            LocationCreateDTO.from_dict(self.request(total_slots=2000, name=""))
        fields = {err["loc"][0] for err in ctx.exception.errors}
        self.assertEqual(fields, {"total_slots", "name"})
        self.assertIn("total_slots", str(ctx.exception))

    def test_negative_rates_rejected(self):
        with self.assertRaises(ValidationError):
            LocationCreateDTO.from_dict(self.request(
                price_rules=[{"name": "Bad", "hourly_rate": -1, "daily_rate": 1}]
            ))

    def test_parse_dto_passes_instances_through(self):
        dto = LocationCreateDTO.from_dict(self.request())
        self.assertIs(parse_dto(LocationCreateDTO, dto), dto)

    def test_json_round_trip(self):
        dto = LocationCreateDTO.from_dict(self.request())
        self.assertEqual(LocationCreateDTO.from_json(dto.to_json()), dto)


class TestBookingRequestDTO(unittest.TestCase):

    def request(self, **overrides):
        data = {
            "user_id": "2",
            "location_id": "1",
            "slot_id": "slot-1",
            "start_time": START,
            "end_time": START + timedelta(hours=2),
        }
        data.update(overrides)
        return data

    def test_defaults(self):
        dto = BookingRequestDTO.from_dict(self.request(vehicle_number="abc123"))
        self.assertEqual(dto.payment_status, PaymentStatus.PAID)
        self.assertEqual(dto.vehicle_number, "ABC123")

    def test_iso_strings_accepted(self):
        dto = BookingRequestDTO.from_dict(self.request(
            start_time="2024-06-01T14:00:00", end_time="2024-06-01T15:30:00"
        ))
        self.assertEqual(dto.start_time, START)

    def test_end_must_follow_start(self):
        with self.assertRaises(ValidationError):
            BookingRequestDTO.from_dict(self.request(end_time=START))

    def test_aware_times_become_naive(self):
        aware = START.replace(tzinfo=timezone.utc)
        dto = BookingRequestDTO.from_dict(self.request(
            start_time=aware, end_time=aware + timedelta(hours=1)
        ))
        self.assertIsNone(dto.start_time.tzinfo)
        self.assertEqual(dto.end_time - dto.start_time, timedelta(hours=1))

    def test_missing_fields(self):
        with self.assertRaises(ValidationError) as ctx:
            BookingRequestDTO.from_dict({"user_id": "2"})
        self.assertGreaterEqual(len(ctx.exception.errors), 4)


class TestLocationSearchDTO(unittest.TestCase):

    def test_origin(self):
        self.assertIsNone(LocationSearchDTO().origin)
        dto = LocationSearchDTO(origin_latitude=40.7, origin_longitude=-74.0, sort_by="price")
        self.assertEqual(dto.origin, (40.7, -74.0))
        self.assertEqual(dto.sort_by, SortKey.PRICE)

    def test_bad_sort_key(self):
        with self.assertRaises(ValidationError):
            parse_dto(LocationSearchDTO, {"sort_by": "rating"})


if __name__ == '__main__':
    unittest.main()
