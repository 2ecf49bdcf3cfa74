from fastapi import APIRouter

from src.api.admin.keys import router as keys_router
from src.api.admin.payments import router as payments_router
from src.api.admin.providers import router as providers_router
from src.api.admin.proxies import router as proxies_router
from src.api.core.dependencies import AdminDep

router = APIRouter(prefix="/admin", dependencies=[AdminDep])

router.include_router(keys_router)
router.include_router(payments_router)
router.include_router(providers_router)
router.include_router(proxies_router)
