"""
API Routes
"""
from fastapi import APIRouter

from wazzup_relay.api.routes.admin_queue import router as admin_queue_router
from wazzup_relay.api.webhooks.wazzup import router as wazzup_router

router = APIRouter()

router.include_router(wazzup_router, tags=["webhooks"])
router.include_router(admin_queue_router, prefix="/admin", tags=["admin"])
