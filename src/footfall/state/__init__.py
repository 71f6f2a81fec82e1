"""State/store layer.

The store is the single source of truth for per-location occupancy and
hourly history; the query service is its read-only face.
"""

from footfall.state.query import DEFAULT_HISTORY_WINDOW, QueryService
from footfall.state.store import OccupancyStore

__all__ = ["DEFAULT_HISTORY_WINDOW", "OccupancyStore", "QueryService"]
