"""Field registry, field types and value dispatch."""
