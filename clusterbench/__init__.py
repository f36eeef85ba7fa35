"""Cluster performance benchmark under validator faults."""

__version__ = "1.0.0"
