"""Terminal display helpers."""
