# File: parkbook/main.py
"""
Console entry point for the Parking Booking Ledger

Each run loads the demo catalog into a fresh in-memory store and executes
one command against it:
    parkbook locations
    parkbook slots --location 1 --vehicle-type car
    parkbook search downtown --sort price
    parkbook bookings --user 2 --status active
    parkbook book --location 1 --slot slot-2 --user 2 --start 2024-06-01T10:00 --hours 3
    parkbook cancel --booking 1 --user 2
    parkbook toggle --location 1 --slot slot-3
    parkbook price --location 1 --slot slot-3 --price 6.50
    parkbook dashboard
"""

from datetime import datetime, timedelta
import argparse
import asyncio
import logging
import os
import sys

from .application.parking_service import ParkingService, ParkingServiceFactory
from .domain.errors import LedgerError
from .infrastructure.seed import load_demo_catalog


def setup_logging(level: str = "INFO", log_file: str = None):
    """Setup application logging configuration"""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )
    return logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="parkbook", description="Parking slot booking ledger")
    parser.add_argument("--log-level", default="WARNING", help="logging level (default: WARNING)")
    parser.add_argument("--log-file", default=None, help="also write logs to this file")
    parser.add_argument("--seed", type=int, default=None, help="seed for the demo catalog and simulations")
    parser.add_argument("--payment-delay", type=float, default=2.0, help="simulated payment delay in seconds")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("locations", help="list parking locations")

    slots = commands.add_parser("slots", help="list a location's free slots")
    slots.add_argument("--location", required=True)
    slots.add_argument("--vehicle-type", choices=["car", "bike", "van"], default=None)

    search = commands.add_parser("search", help="search locations by name or address")
    search.add_argument("query", nargs="?", default="")
    search.add_argument("--sort", choices=["distance", "price", "availability"], default="distance")
    search.add_argument("--lat", type=float, default=None)
    search.add_argument("--lon", type=float, default=None)

    bookings = commands.add_parser("bookings", help="list a user's bookings")
    bookings.add_argument("--user", required=True)
    bookings.add_argument("--status", choices=["active", "completed", "cancelled"], default=None)

    book = commands.add_parser("book", help="book a slot")
    book.add_argument("--location", required=True)
    book.add_argument("--slot", required=True)
    book.add_argument("--user", required=True)
    book.add_argument("--start", type=datetime.fromisoformat, default=None,
                      help="ISO start time (default: one hour from now)")
    book.add_argument("--hours", type=float, default=1.0)
    book.add_argument("--vehicle", default=None, help="vehicle registration number")

    cancel = commands.add_parser("cancel", help="cancel a booking")
    cancel.add_argument("--booking", required=True)
    cancel.add_argument("--user", required=True)

    toggle = commands.add_parser("toggle", help="enable or disable a slot")
    toggle.add_argument("--location", required=True)
    toggle.add_argument("--slot", required=True)

    price = commands.add_parser("price", help="set a slot's hourly price")
    price.add_argument("--location", required=True)
    price.add_argument("--slot", required=True)
    price.add_argument("--price", required=True)

    commands.add_parser("dashboard", help="dealer overview")
    return parser


def _print_location(location):
    print(
        f"{location.id:>4}  {location.name:<24} {location.available_slots:>4}/{location.total_slots:<4} "
        f"from {location.lowest_price}/h  {location.address}"
    )
    if location.features:
        print(f"      {', '.join(f.display_name for f in location.features)}")


def run_command(service: ParkingService, args) -> None:
    ledger = service.ledger

    if args.command == "locations":
        for location in ledger.list_locations():
            _print_location(location)

    elif args.command == "search":
        origin = (args.lat, args.lon) if args.lat is not None and args.lon is not None else None
        for result in service.search_locations(args.query, args.sort, origin):
            print(
                f"{result.id:>4}  {result.name:<24} {result.distance_km:>5} km  "
                f"{result.available_slots:>4} free  from {result.lowest_price}/h"
            )

    elif args.command == "bookings":
        for booking in service.get_user_bookings(args.user, args.status):
            print(
                f"{booking.id:>4}  {booking.location_name:<24} slot {booking.slot_number:<4} "
                f"{booking.start_time:%Y-%m-%d %H:%M} -> {booking.end_time:%H:%M}  "
                f"{booking.total_amount:>8}  {booking.status}"
            )

    elif args.command == "slots":
        free = service.get_available_slots(args.location, args.vehicle_type)
        for slot in free:
            print(f"{slot.id:<12} #{slot.number:<4} {slot.vehicle_type.value:<5} {slot.price}/h")
        print(f"{len(free)} slot(s) free")

    elif args.command == "book":
        start = args.start or ledger.now() + timedelta(hours=1)
        booking = asyncio.run(service.book_slot({
            "user_id": args.user,
            "location_id": args.location,
            "slot_id": args.slot,
            "start_time": start,
            "end_time": start + timedelta(hours=args.hours),
            "vehicle_number": args.vehicle,
        }))
        print(f"Booked {booking}")
        print(f"Total: {booking.total_amount} ({booking.billable_hours}h)")

    elif args.command == "cancel":
        booking = service.cancel_booking(args.booking, args.user)
        print(f"Cancelled {booking}")

    elif args.command == "toggle":
        location = service.toggle_slot(args.location, args.slot)
        slot = location.get_slot(args.slot)
        print(f"{location.name}: slot {slot.number} is now {slot.status.value}")

    elif args.command == "price":
        location = service.set_slot_price(args.location, args.slot, args.price)
        slot = location.get_slot(args.slot)
        print(f"{location.name}: slot {slot.number} now costs {slot.price}/h")

    elif args.command == "dashboard":
        dashboard = service.get_dashboard()
        for key, value in dashboard.to_dict(exclude={"locations"}).items():
            print(f"{key:<18} {value}")
        for row in dashboard.locations:
            print(
                f"{row.location_id:>4}  {row.name:<24} {row.occupancy_rate:>5}% occupied  "
                f"{row.available_slots} free, {row.booked_slots} booked, {row.disabled_slots} disabled"
            )


def main(argv=None) -> int:
    """Main entry point for the application"""
    args = build_parser().parse_args(argv)
    logger = setup_logging(args.log_level, args.log_file)

    service = ParkingServiceFactory.create_service_with_config({
        "seed": args.seed,
        "payment_delay_seconds": args.payment_delay,
    })
    try:
        load_demo_catalog(service.ledger, seed=args.seed)
        run_command(service, args)
    except LedgerError as e:
        logger.error(f"{e.__class__.__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        service.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
