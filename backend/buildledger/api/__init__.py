"""
API Routes
Project: BuildLedger (contractor billing)

Aggregates the versioned routers.
"""

from buildledger.api.v1 import api_v1_router

__all__ = ["api_v1_router"]
