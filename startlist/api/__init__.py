"""
API module for Startlist.

Provides REST endpoints for:
- The startlist (starts, landings, launch types)
- Daily statistics
- System status
"""

from startlist.api.flights import flights_bp
from startlist.api.metrics import metrics_bp

__all__ = ['flights_bp', 'metrics_bp']
