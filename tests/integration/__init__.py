"""
Integration Tests Package for the Parking Booking Ledger

Integration tests exercise the async service facade, the ledger and the
in-memory store together:
1. Location registration with geocoding
2. Booking with payment, including failed and abandoned payments
3. The demo catalog and the console entry point
"""
