"""Polymarket sports catalog sync - event/market ingestion and read views."""

__version__ = "0.1.0"
