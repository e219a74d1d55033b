"""Parking slot booking ledger: dealer locations, slots and customer bookings"""

__version__ = "1.0.0"
