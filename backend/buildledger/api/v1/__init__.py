"""
API v1 Routes
Project: BuildLedger (contractor billing)

Version 1 API router.
"""

from fastapi import APIRouter

from buildledger.api.v1 import documents

api_v1_router = APIRouter(prefix="/api/v1")

api_v1_router.include_router(documents.router)

__all__ = ["api_v1_router"]
