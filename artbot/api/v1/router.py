from fastapi import APIRouter

from artbot.api.v1.routes.backends import router as backends_router
from artbot.api.v1.routes.generation import router as generation_router

api_router = APIRouter()
api_router.include_router(generation_router, tags=["generation"])
api_router.include_router(backends_router, prefix="/backends", tags=["backends"])
