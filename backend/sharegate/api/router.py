from fastapi import APIRouter

from sharegate.api.approvals import router as approvals_router
from sharegate.api.categories import router as categories_router
from sharegate.api.dashboard import router as dashboard_router
from sharegate.api.permissions import router as permissions_router
from sharegate.api.policies import router as policies_router
from sharegate.api.settings import router as settings_router
from sharegate.api.shares import router as shares_router

router = APIRouter(prefix="/v1")


@router.get("/status", tags=["system"])
async def status() -> dict[str, str]:
    return {"api": "up"}


router.include_router(policies_router)
router.include_router(settings_router)
router.include_router(approvals_router)
router.include_router(shares_router)
router.include_router(permissions_router)
router.include_router(categories_router)
router.include_router(dashboard_router)

api_router = APIRouter()
api_router.include_router(router)
