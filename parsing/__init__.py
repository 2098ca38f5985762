# parsing/__init__.py
"""Parsing helpers for model output: JSON repair and streaming field extraction."""

from .json_repair import repair_json, repair_json_text
from .stream_extract import extract_field, extract_field_state

__all__ = [
    "repair_json",
    "repair_json_text",
    "extract_field",
    "extract_field_state",
]
