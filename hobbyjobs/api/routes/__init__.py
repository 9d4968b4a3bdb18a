"""
API Routes
"""
from fastapi import APIRouter

from hobbyjobs.api.routes.admin_batch import router as admin_batch_router
from hobbyjobs.api.webhooks.helloasso import router as helloasso_router

router = APIRouter()

router.include_router(helloasso_router, prefix="/payments")
router.include_router(admin_batch_router, prefix="/admin/batch", tags=["admin"])
