"""Garage CRM: job tracking and financial aggregation for garage door service."""

__version__ = "0.1.0"
