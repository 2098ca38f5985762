"""Errors and HTTP transports shared by the generation layer."""
