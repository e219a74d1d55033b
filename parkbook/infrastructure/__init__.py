"""Infrastructure layer: in-memory store, event bus and demo catalog"""
