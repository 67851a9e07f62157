"""Pipeline nodes that talk to the generation and transformation services."""
