"""Add-on aggregation proxy application package."""
