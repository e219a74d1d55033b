"""Application layer: the booking ledger, DTOs and the async service facade"""
