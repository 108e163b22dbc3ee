"""Scheduling backend: admin back-office and patient booking API."""

__version__ = "1.0.0"
