# app/routers/v1/api.py

from fastapi import APIRouter

from app.routers.v1.endpoints import coupon, points
from app.routers.v1.endpoints import admin as admin_v1_router

# Все пути, подключенные к нему, будут иметь префикс /api/v1
api_router = APIRouter(prefix="/v1")

# Пользовательские эндпоинты
api_router.include_router(points.router, tags=["Loyalty Points"])
api_router.include_router(coupon.router, tags=["Coupons"])

# Админские эндпоинты
api_router.include_router(admin_v1_router.router, prefix="/admin", tags=["Admin"])
