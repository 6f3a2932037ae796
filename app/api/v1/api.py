from fastapi import APIRouter
from app.api.v1.routes.auth import router as auth_router
from app.api.v1.routes.profile import router as profile_router
from app.api.v1.routes.pricing import router as pricing_router
from app.api.v1.routes.contracts import router as contracts_router
from app.api.v1.routes.airline import router as airline_router
from app.api.v1.routes.delivery import router as delivery_router
from app.api.v1.routes.admin import router as admin_router
from app.api.v1.routes.files import router as files_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth_router)
api_router.include_router(profile_router)
api_router.include_router(pricing_router)
api_router.include_router(contracts_router)
api_router.include_router(airline_router)
api_router.include_router(delivery_router)
api_router.include_router(admin_router)
api_router.include_router(files_router)
