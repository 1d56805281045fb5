"""Custody-transfer metering news aggregation pipeline."""

__version__ = "1.0.0"
