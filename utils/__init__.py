# utils/__init__.py
"""Shared helpers for the Arcloom generation layer."""

from __future__ import annotations

from .callbacks import invoke_callback
from .logging import setup_logging

__all__ = ["invoke_callback", "setup_logging"]
