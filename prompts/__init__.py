"""Jinja2 templates for every generation prompt."""
