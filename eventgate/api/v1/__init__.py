"""
API v1 routes.
"""

from fastapi import APIRouter

from eventgate.api.v1 import audits, permissions
from eventgate.schemas.common import ErrorResponse

router = APIRouter(
    responses={
        401: {"model": ErrorResponse, "description": "No principal supplied"},
        403: {"model": ErrorResponse, "description": "Insufficient permissions"},
        503: {"model": ErrorResponse, "description": "Permission store unavailable"},
    },
)

router.include_router(permissions.router, tags=["Permissions"])
router.include_router(audits.router, prefix="/teams/{team_slug}/audits", tags=["Audits"])
