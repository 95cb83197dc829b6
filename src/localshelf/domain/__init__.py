"""Domain layer: entities, ports, exceptions and value objects."""
