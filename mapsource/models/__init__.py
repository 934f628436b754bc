"""Dataclass records describing layer configs, sources and capabilities."""
