#!/usr/bin/env python3
"""
Booking Flow Integration Tests

End-to-end scenarios through the async ParkingService: registering a
location, paying for and committing bookings, abandoned payments, and the
demo catalog.
"""

import asyncio
import io
import unittest
import sys
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

sys.path.append(str(Path(__file__).parent.parent.parent))

from parkbook.application.ledger import BookingLedger
from parkbook.application.parking_service import ParkingServiceFactory
from parkbook.domain.errors import (
    IllegalStateError, PaymentError, SlotUnavailableError, ValidationError
)
from parkbook.domain.models import BookingStatus, SlotStatus
from parkbook.domain.strategies import (
    DecliningPaymentProcessor, InstantPaymentProcessor, SimulatedPaymentProcessor
)
from parkbook.infrastructure.repositories import LedgerStore
from parkbook.infrastructure.seed import (
    DEMO_CUSTOMER_ID, build_demo_locations, find_demo_user, load_demo_catalog
)
from parkbook.main import main

NOW = datetime(2024, 6, 1, 12, 0)


class FixedClock:
    def __init__(self, now=NOW):
        self.current = now

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


class SlowPayments(InstantPaymentProcessor):
    """Approves after a short delay so concurrent bookings interleave"""

    def __init__(self, delay_seconds):
        super().__init__()
        self.delay_seconds = delay_seconds

    async def charge(self, user_id, amount):
        await asyncio.sleep(self.delay_seconds)
        return await super().charge(user_id, amount)


LOCATION_REQUEST = {
    "name": "Harbour Garage",
    "geo_location": {"address": "5 Pier Rd", "city": "New York", "state": "NY"},
    "parking_type": "garage",
    "contact_primary": "+1 555 0199",
    "features": ["covered-parking"],
    "total_slots": 20,
    "price_rules": [{"name": "Car - Peak Hours", "hourly_rate": 6, "daily_rate": 45}],
}


class TestBookingFlow(unittest.IsolatedAsyncioTestCase):
    """Service-level booking scenarios"""

    def setUp(self):
        self.clock = FixedClock()
        self.payments = InstantPaymentProcessor()
        self.service = ParkingServiceFactory.create_mock_service(
            clock=self.clock, payment_processor=self.payments
        )
        self.location = self.service.register_location(LOCATION_REQUEST)

    def tearDown(self):
        self.service.close()

    def booking_request(self, slot_number=1, user_id="user-1", hours=2):
        start = self.clock() + timedelta(hours=3)
        return {
            "user_id": user_id,
            "location_id": self.location.id,
            "slot_id": self.location.get_slot_by_number(slot_number).id,
            "start_time": start,
            "end_time": start + timedelta(hours=hours),
            "vehicle_number": "ny-1234",
        }

    def test_registration_geocodes_address(self):
        geo = self.location.geo_location
        self.assertEqual(geo.get_coordinates(), (40.7128, -74.0060))
        self.assertEqual(geo.address, "5 Pier Rd")
        self.assertEqual(self.location.available_slots, 18)
        self.assertEqual(self.location.parking_type.value, "garage")

    async def test_paid_booking_is_committed(self):
        booking = await self.service.book_slot(self.booking_request(hours=2))

        self.assertEqual(booking.total_amount, Decimal('12.00'))
        self.assertEqual(booking.vehicle_number, "NY-1234")
        self.assertEqual(self.payments.charges, [("user-1", Decimal('12.00'))])
        self.assertEqual(self.location.available_slots, 17)

        views = self.service.get_user_bookings("user-1")
        self.assertEqual([v.id for v in views], [booking.id])
        self.assertTrue(views[0].can_cancel)

    async def test_declined_payment_creates_nothing(self):
        self.service.payment_processor = DecliningPaymentProcessor()
        with self.assertRaises(PaymentError):
            await self.service.book_slot(self.booking_request())

        self.assertEqual(self.service.ledger.list_bookings(), [])
        self.assertEqual(self.location.get_slot_by_number(1).status, SlotStatus.AVAILABLE)
        self.assertEqual(self.location.available_slots, 18)

    async def test_unavailable_slot_is_never_charged(self):
        with self.assertRaises(SlotUnavailableError):
            await self.service.book_slot(self.booking_request(slot_number=20))
        self.assertEqual(self.payments.charges, [])

    async def test_invalid_request_is_never_charged(self):
        request = self.booking_request()
        request["end_time"] = request["start_time"]
        with self.assertRaises(ValidationError):
            await self.service.book_slot(request)
        self.assertEqual(self.payments.charges, [])

    async def test_abandoned_payment_leaves_store_untouched(self):
        self.service.payment_processor = SimulatedPaymentProcessor(delay_seconds=5)
        task = asyncio.create_task(self.service.book_slot(self.booking_request()))
        await asyncio.sleep(0.01)
        task.cancel()

        with self.assertRaises(asyncio.CancelledError):
            await task

        self.assertEqual(self.service.ledger.list_bookings(), [])
        self.assertEqual(self.location.available_slots, 18)

    async def test_payment_timeout(self):
        self.service.payment_processor = SimulatedPaymentProcessor(delay_seconds=5)
        self.service.config["payment_timeout_seconds"] = 0.01
        with self.assertRaises(PaymentError):
            await self.service.book_slot(self.booking_request())
        self.assertEqual(self.service.ledger.list_bookings(), [])

    async def test_slot_taken_while_payment_pending(self):
        payments = SlowPayments(delay_seconds=0.01)
        self.service.payment_processor = payments
        results = await asyncio.gather(
            self.service.book_slot(self.booking_request(user_id="user-1")),
            self.service.book_slot(self.booking_request(user_id="user-2")),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        bookings = [r for r in results if not isinstance(r, Exception)]
        self.assertEqual(len(bookings), 1)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], SlotUnavailableError)
        self.assertEqual(self.location.available_slots, 17)

        # Both were charged; the customer who lost the slot is refunded
        self.assertEqual(
            sorted(payments.charges),
            [("user-1", Decimal('12.00')), ("user-2", Decimal('12.00'))]
        )
        loser = "user-2" if bookings[0].user_id == "user-1" else "user-1"
        self.assertEqual(payments.refunds, [(loser, Decimal('12.00'))])

    async def test_successful_booking_is_not_refunded(self):
        await self.service.book_slot(self.booking_request())
        self.assertEqual(self.payments.refunds, [])

    async def test_book_cancel_rebook(self):
        first = await self.service.book_slot(self.booking_request(user_id="user-1"))
        self.service.cancel_booking(first.id, "user-1")
        second = await self.service.book_slot(self.booking_request(user_id="user-2"))

        self.assertEqual(first.status, BookingStatus.CANCELLED)
        self.assertEqual(second.status, BookingStatus.ACTIVE)
        self.assertEqual(self.location.get_slot_by_number(1).booked_by, "user-2")
        self.assertEqual(
            [v.id for v in self.service.get_user_bookings("user-1", "cancelled")], [first.id]
        )

    async def test_booking_completes_over_time(self):
        booking = await self.service.book_slot(self.booking_request(hours=1))
        self.clock.advance(hours=5)

        self.assertEqual(self.service.get_user_bookings("user-1")[0].status, "completed")
        self.assertEqual(self.service.complete_expired(), [booking])
        self.assertEqual(self.location.available_slots, 18)

    async def test_dashboard_after_bookings(self):
        await self.service.book_slot(self.booking_request(slot_number=1, hours=2))
        await self.service.book_slot(self.booking_request(slot_number=2, hours=1))

        dashboard = self.service.get_dashboard()
        self.assertEqual(dashboard.booked_slots, 2)
        self.assertEqual(dashboard.available_slots, 16)
        self.assertEqual(dashboard.total_revenue, Decimal('18.00'))

    def test_search_uses_default_sort(self):
        self.service.config["default_sort"] = "availability"
        results = self.service.search_locations("harbour")
        self.assertEqual([r.id for r in results], [self.location.id])
        self.assertEqual(results[0].distance_km, 1.0)


class TestServiceFactory(unittest.IsolatedAsyncioTestCase):

    async def test_service_with_config(self):
        clock = FixedClock()
        service = ParkingServiceFactory.create_service_with_config({
            "seed": 5,
            "payment_delay_seconds": 0,
            "policies": {"cancellation_window_hours": 2},
            "clock": clock,
            "default_sort": "price",
        })
        self.addCleanup(service.close)

        self.assertEqual(service.config["default_sort"], "price")
        self.assertEqual(service.ledger.policies.cancellation_window_hours, 2)
        self.assertEqual(service.payment_processor.delay_seconds, 0)

        location = service.register_location(LOCATION_REQUEST)
        start = clock() + timedelta(hours=1, minutes=30)
        booking = await service.book_slot({
            "user_id": "user-1",
            "location_id": location.id,
            "slot_id": location.get_slot_by_number(1).id,
            "start_time": start,
            "end_time": start + timedelta(hours=1),
        })

        # 90 minutes ahead is inside the two hour window
        with self.assertRaises(IllegalStateError):
            service.cancel_booking(booking.id, "user-1")

    def test_default_service(self):
        service = ParkingServiceFactory.create_default_service()
        self.addCleanup(service.close)
        self.assertEqual(service.payment_processor.delay_seconds, 2.0)
        self.assertTrue(service.config["notify_users"])


class TestDemoCatalog(unittest.TestCase):

    def setUp(self):
        self.clock = FixedClock()
        self.ledger = BookingLedger(LedgerStore(), clock=self.clock)
        load_demo_catalog(self.ledger, seed=11)

    def tearDown(self):
        self.ledger.store.close()

    def test_catalog_shape(self):
        downtown = self.ledger.get_location('1')
        midtown = self.ledger.get_location('2')

        self.assertEqual((downtown.name, downtown.total_slots), ("Downtown Plaza", 50))
        self.assertEqual((midtown.name, midtown.total_slots), ("Shopping Center", 100))
        self.assertEqual(downtown.max_bookable_slots, 45)
        self.assertEqual(midtown.max_bookable_slots, 90)
        self.assertEqual(downtown.get_slot('slot-7').number, 7)
        self.assertEqual(midtown.get_slot('slot-sc-7').number, 7)

        for location in (downtown, midtown):
            expected = sum(1 for s in location.slots if s.status == SlotStatus.AVAILABLE)
            self.assertEqual(location.available_slots, expected)
            beyond = location.slots[location.max_bookable_slots:]
            self.assertTrue(all(s.status == SlotStatus.DISABLED for s in beyond))

    def test_same_seed_same_catalog(self):
        first = build_demo_locations(NOW, seed=3)
        second = build_demo_locations(NOW, seed=3)
        for a, b in zip(first, second):
            self.assertEqual([s.status for s in a.slots], [s.status for s in b.slots])

    def test_demo_bookings(self):
        bookings = self.ledger.list_bookings_for_user(DEMO_CUSTOMER_ID)
        self.assertEqual([b.id for b in bookings], ['1', '2'])

        active, finished = bookings
        self.assertEqual(active.status, BookingStatus.ACTIVE)
        self.assertEqual(finished.status, BookingStatus.COMPLETED)

        slot = self.ledger.get_location('1').get_slot('slot-1')
        self.assertEqual(slot.status, SlotStatus.BOOKED)
        self.assertEqual(slot.booked_by, DEMO_CUSTOMER_ID)
        self.assertEqual(slot.booked_until, active.end_time)

    def test_started_booking_cannot_be_cancelled(self):
        with self.assertRaises(IllegalStateError):
            self.ledger.cancel_booking('1', DEMO_CUSTOMER_ID)

    def test_running_booking_completes(self):
        downtown = self.ledger.get_location('1')
        available = downtown.available_slots
        self.clock.advance(hours=3)

        completed = self.ledger.complete_expired()

        self.assertEqual([b.id for b in completed], ['1'])
        self.assertEqual(downtown.get_slot('slot-1').status, SlotStatus.AVAILABLE)
        self.assertEqual(downtown.available_slots, available + 1)

    def test_dashboard(self):
        dashboard = self.ledger.dashboard()
        self.assertEqual(dashboard.total_slots, 150)
        self.assertEqual(dashboard.total_revenue, Decimal('35.00'))
        self.assertEqual(dashboard.todays_bookings, 1)
        self.assertEqual(dashboard.active_bookings, 1)

    def test_search(self):
        self.assertEqual([r.name for r in self.ledger.search_locations("midtown")], ["Shopping Center"])
        self.assertEqual([r.name for r in self.ledger.search_locations("main st")], ["Downtown Plaza"])

    def test_demo_users(self):
        self.assertEqual(find_demo_user("Customer@Example.com").id, DEMO_CUSTOMER_ID)
        self.assertIsNone(find_demo_user("nobody@example.com"))


class TestConsoleEntryPoint(unittest.TestCase):

    def run_main(self, *args):
        argv = ["--log-level", "CRITICAL", "--seed", "4", "--payment-delay", "0"] + list(args)
        with patch('sys.stdout', new_callable=io.StringIO) as out, \
                patch('sys.stderr', new_callable=io.StringIO) as err:
            code = main(argv)
        return code, out.getvalue(), err.getvalue()

    def test_locations(self):
        code, out, _ = self.run_main("locations")
        self.assertEqual(code, 0)
        self.assertIn("Downtown Plaza", out)
        self.assertIn("Shopping Center", out)
        self.assertIn("Covered Parking, Surveillance, EV Charging", out)

    def test_search(self):
        code, out, _ = self.run_main("search", "commerce", "--sort", "price")
        self.assertEqual(code, 0)
        self.assertIn("Shopping Center", out)
        self.assertNotIn("Downtown Plaza", out)

    def test_bookings(self):
        code, out, _ = self.run_main("bookings", "--user", DEMO_CUSTOMER_ID, "--status", "completed")
        self.assertEqual(code, 0)
        self.assertIn("slot 15", out)

    def test_book(self):
        downtown = build_demo_locations(NOW, seed=4)[0]
        free = next(s for s in downtown.slots if s.status == SlotStatus.AVAILABLE)

        code, out, _ = self.run_main(
            "book", "--location", "1", "--slot", free.id, "--user", DEMO_CUSTOMER_ID, "--hours", "2"
        )
        self.assertEqual(code, 0)
        self.assertIn("Total: 10.00 (2h)", out)

    def test_slots(self):
        downtown = build_demo_locations(NOW, seed=4)[0]
        free = downtown.get_available_slots()

        code, out, _ = self.run_main("slots", "--location", "1")
        self.assertEqual(code, 0)
        self.assertIn(f"{len(free)} slot(s) free", out)
        self.assertIn(free[0].id, out)

    def test_dashboard(self):
        code, out, _ = self.run_main("dashboard")
        self.assertEqual(code, 0)
        self.assertIn("total_slots", out)
        self.assertIn("Downtown Plaza", out)
        self.assertIn("% occupied", out)

    def test_toggle_disabled_slot(self):
        code, out, _ = self.run_main("toggle", "--location", "1", "--slot", "slot-50")
        self.assertEqual(code, 0)
        self.assertIn("slot 50 is now available", out)

    def test_ledger_errors_exit_non_zero(self):
        code, _, err = self.run_main("cancel", "--booking", "1", "--user", "1")
        self.assertEqual(code, 1)
        self.assertIn("does not belong", err)

        code, _, _ = self.run_main("toggle", "--location", "1", "--slot", "slot-1")
        self.assertEqual(code, 1)

    def test_price(self):
        code, out, _ = self.run_main("price", "--location", "1", "--slot", "slot-3", "--price", "6.5")
        self.assertEqual(code, 0)
        self.assertIn("slot 3 now costs 6.50/h", out)

    def test_non_finite_price_is_reported(self):
        for bad in ("inf", "nan"):
            with self.subTest(price=bad):
                code, _, err = self.run_main("price", "--location", "1", "--slot", "slot-3", "--price", bad)
                self.assertEqual(code, 1)
                self.assertIn("finite", err)


if __name__ == '__main__':
    unittest.main()
