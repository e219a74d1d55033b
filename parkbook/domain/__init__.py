"""Domain layer: entities, aggregates, value objects and strategies"""
