"""
Top-level API router.
Combines all sub-routers into a single router.
"""

from fastapi import APIRouter

from feedback_exchange.api.health import router as health_router
from feedback_exchange.api.tokens import router as tokens_router
from feedback_exchange.api.listings import router as listings_router
from feedback_exchange.api.reviews import router as reviews_router
from feedback_exchange.api.reputation import router as reputation_router
from feedback_exchange.api.disputes import router as disputes_router
from feedback_exchange.api.maintenance import router as maintenance_router

api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(tokens_router)
api_router.include_router(listings_router)
api_router.include_router(reviews_router)
api_router.include_router(reputation_router)
api_router.include_router(disputes_router)
api_router.include_router(maintenance_router)
