"""Layered configuration, broker interfaces and database connectors for services."""

__version__ = "0.1.0"