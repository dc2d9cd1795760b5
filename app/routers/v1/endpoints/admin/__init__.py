# app/routers/v1/endpoints/admin/__init__.py

from fastapi import APIRouter, Depends

from app.dependencies import get_admin_user

from . import coupons, points, tasks

# Зависимость get_admin_user применяется ко ВСЕМ подключенным эндпоинтам:
# доступ к админке только у пользователей с ролью ADMIN.
router = APIRouter(
    dependencies=[Depends(get_admin_user)]
)

# /admin/points, /admin/points/{id}, /admin/points/award, ...
router.include_router(points.router, prefix="/points")

# /admin/coupons, /admin/coupons/user, ...
router.include_router(coupons.router, prefix="/coupons")

# /admin/tasks, /admin/tasks/run
router.include_router(tasks.router, prefix="/tasks")
