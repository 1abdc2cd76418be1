"""API v1 routes."""

from fastapi import APIRouter

from gateway.api.v1.activity import router as activity_router
from gateway.api.v1.api_keys import router as api_keys_router
from gateway.api.v1.endpoints import router as endpoints_router
from gateway.api.v1.invoke import router as invoke_router
from gateway.api.v1.probe import router as probe_router
from gateway.api.v1.tags import router as tags_router

router = APIRouter()

router.include_router(endpoints_router, prefix="/endpoints", tags=["endpoints"])
router.include_router(api_keys_router, prefix="/api-keys", tags=["api-keys"])
router.include_router(tags_router, prefix="/tags", tags=["tags"])
router.include_router(probe_router, prefix="/probe", tags=["probe"])
router.include_router(invoke_router, prefix="/invoke", tags=["invoke"])
router.include_router(activity_router, tags=["activity"])
