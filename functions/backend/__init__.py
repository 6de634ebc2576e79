"""
Backend package for the fleet maintenance functions.

This package holds the record store, role gate, mutation pipeline, change
triggers and notification fan-out that `main.py` exposes as callable
endpoints, database triggers and scheduled jobs.
"""
