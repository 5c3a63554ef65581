from fastapi import APIRouter
from app.api.v1.endpoints import automation, communications

api_router = APIRouter()
api_router.include_router(automation.router, prefix="/automation", tags=["automation"])
api_router.include_router(communications.router, prefix="/communications", tags=["communications"])
