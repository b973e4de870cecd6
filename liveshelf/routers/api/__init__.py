"""JSON API routers organized by responsibility.

This module exports a combined router that includes all API endpoints:

- submission: broadcast add / claim
- notes: standalone note add
- preview: cached or refreshed preview metadata
- shelves: listings, search and per-tag / per-broadcaster / per-user shelves
"""

from fastapi import APIRouter

from liveshelf.routers.api import notes, preview, shelves, submission

router = APIRouter(
    tags=["broadcasts"],
    responses={404: {"description": "Not found"}},
)

router.include_router(submission.router)
router.include_router(notes.router)
router.include_router(preview.router)
router.include_router(shelves.router)

__all__ = ["router"]
