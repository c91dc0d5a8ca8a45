"""
Occupancy services.

Reconciliation is read-only and derived fresh on every call.
"""

from .occupancy_reconciler_service import OccupancyReconciler, ReconciliationResult

__all__ = ["OccupancyReconciler", "ReconciliationResult"]
