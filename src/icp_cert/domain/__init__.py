"""Domain layer — value objects and ports. No I/O."""
