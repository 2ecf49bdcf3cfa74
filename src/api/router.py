from fastapi import APIRouter

from src.api.admin.router import router as admin_router
from src.api.gateway.router import router as gateway_router
from src.api.health.router import router as health_router
from src.api.keys.router import router as keys_router
from src.api.payments.router import router as payments_router
from src.api.payos.router import router as payos_router

# V1 API router
v1_router = APIRouter(prefix="/v1")

v1_router.include_router(gateway_router)
v1_router.include_router(keys_router)
v1_router.include_router(payments_router)
v1_router.include_router(admin_router)

# Main API router
api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(payos_router)
api_router.include_router(v1_router)
