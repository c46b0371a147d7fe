from fastapi import APIRouter

from app.api.auth import router as auth_router
from app.api.calls import router as calls_router
from app.api.chats import router as chats_router
from app.api.config import router as config_router
from app.api.feed import follows_router, router as posts_router
from app.api.friends import router as friends_router
from app.api.media import router as media_router
from app.api.profile import presence_router, router as profile_router, users_router
from app.api.push import router as push_router
from app.api.stories import router as stories_router

router = APIRouter()

router.include_router(auth_router, prefix="/auth", tags=["auth"])
router.include_router(config_router)
router.include_router(profile_router)
router.include_router(users_router)
router.include_router(presence_router)
router.include_router(friends_router)
router.include_router(chats_router)
router.include_router(calls_router)
router.include_router(posts_router)
router.include_router(follows_router)
router.include_router(stories_router)
router.include_router(push_router)
router.include_router(media_router)


@router.get("/", tags=["root"])
def read_root() -> dict[str, str]:
    return {"message": "Welcome to the Kindred API"}
