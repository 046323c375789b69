from fastapi import APIRouter

from ticketgate.api.routes import concert, health, lottery

api_router = APIRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])  # GET /
api_router.include_router(concert.router, prefix="/concert", tags=["concert"])  # scan, sync-scan, verify, tiers, orders
api_router.include_router(lottery.router, prefix="/lottery", tags=["lottery"])  # board, locks, orders
