"""
Health Metrics Tracker - CSV import core for daily health metrics.

Parses user-supplied CSV exports, maps their columns to the fixed health
schema, validates rows and reconciles them into per-user daily records.
"""

__version__ = "0.1.0"
