"""
Evacuation services: the REAL/SIMULATED processor and its audit trail.
"""

from .audit_trail_service import AuditTrailWriter
from .evacuation_processor_service import EvacuationProcessor

__all__ = ["AuditTrailWriter", "EvacuationProcessor"]
