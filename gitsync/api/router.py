from fastapi import APIRouter

from gitsync.api.v1 import internal

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(internal.router)
