from fastapi import APIRouter

from homecare.api.routes import (
    bookings,
    notifications,
    outbox,
    platform,
    wallet,
    workflow,
)

api_router = APIRouter()
api_router.include_router(bookings.router)
api_router.include_router(workflow.router)
api_router.include_router(wallet.router)
api_router.include_router(outbox.router)
api_router.include_router(notifications.router)
api_router.include_router(platform.router)
