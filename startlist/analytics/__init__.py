"""
Analytics module for Startlist.

Provides NumPy-based summaries of the recorded startlist.
"""

from startlist.analytics.flight_statistics import compute_day_statistics

__all__ = ['compute_day_statistics']
