"""Adapters connecting the core to decorators and metrics sinks."""
