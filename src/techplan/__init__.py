"""Technician delivery-date and workload estimation."""

__version__ = "0.1.0"
