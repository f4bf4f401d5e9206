"""Cart lifecycle tracking and recovery analytics service."""

__version__ = "1.0.0"
