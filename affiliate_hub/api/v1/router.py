from fastapi import APIRouter

from affiliate_hub.api.v1 import admin, experiments, tracking

router = APIRouter(prefix="/v1")

router.include_router(tracking.router)
router.include_router(experiments.router)
router.include_router(admin.router)
