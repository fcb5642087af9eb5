"""Data pipelines built from sources, flows and sinks joined by thread-safe channels, with an event collector."""

__version__ = "0.1.0"
__all__ = ["pipeline", "events", "collector", "flows", "sinks", "sources"]