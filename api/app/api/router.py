from fastapi import APIRouter

from app.api.routes import adverts, health

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(adverts.router, prefix="/adverts", tags=["adverts"])
