from fastapi import APIRouter

from app.api.v1.endpoints.admin import router as admin_router
from app.api.v1.endpoints.credits import router as credits_router
from app.api.v1.endpoints.health import router as health_router
from app.api.v1.endpoints.internal import router as internal_router
from app.api.v1.endpoints.me import router as me_router
from app.api.v1.endpoints.notifications import router as notifications_router
from app.api.v1.endpoints.products import router as products_router
from app.api.v1.endpoints.referrals import router as referrals_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(me_router, tags=["me"])
router.include_router(products_router, tags=["products"])
router.include_router(credits_router, tags=["credits"])
router.include_router(referrals_router, tags=["referrals"])
router.include_router(notifications_router, tags=["notifications"])
router.include_router(admin_router, tags=["admin"])
router.include_router(internal_router, tags=["internal"])
