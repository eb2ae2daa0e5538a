"""Oversight - agent trust and proposal governance engine."""

__version__ = "0.1.0"
