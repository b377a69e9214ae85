"""Launcher for the add-on aggregation proxy (``python -m addonproxy``)."""
