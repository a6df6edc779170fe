"""Logging and observability setup."""
