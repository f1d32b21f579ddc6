"""
API v1 router.

Authentication lives under /auth, member administration under /admin.
"""

from fastapi import APIRouter

from meet_shared.schemas.common import ErrorResponse

from . import admin, auth

router = APIRouter()

_ERROR_RESPONSES = {
    status: {"model": ErrorResponse}
    for status in (400, 401, 403, 404, 409, 429, 500)
}

router.include_router(
    auth.router, prefix="/auth", tags=["Authentication"], responses=_ERROR_RESPONSES
)
router.include_router(
    admin.router, prefix="/admin", tags=["Administration"], responses=_ERROR_RESPONSES
)
