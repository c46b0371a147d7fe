"""Stories: short-lived images and videos."""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.api.deps import get_current_user, get_user_or_404
from app.api.serializers import serialize_public_user
from app.config import get_settings
from app.core.clock import utcnow
from app.core.storage import IMAGE_TYPES, VIDEO_TYPES, delete_stored, store_media
from app.database import get_db
from app.models import MediaType, Story, User
from app.schemas import StoryGroup, StoryRead

router = APIRouter(prefix="/stories", tags=["stories"])

settings = get_settings()


def _serialize_story(story: Story) -> StoryRead:
    return StoryRead(
        id=story.id,
        user_id=story.user_id,
        media_url=story.media_url,
        media_type=story.media_type,
        created_at=story.created_at,
        expires_at=story.expires_at,
    )


def _active_stmt():
    return select(Story).where(Story.expires_at > utcnow()).options(selectinload(Story.author))


@router.get("", response_model=list[StoryGroup])
async def list_active_stories(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[StoryGroup]:
    """Unexpired stories grouped by author; the most recently active author comes first."""

    stories = db.execute(
        _active_stmt().order_by(Story.created_at.desc(), Story.id.desc())
    ).scalars().all()
    groups: dict[int, StoryGroup] = {}
    for story in stories:
        group = groups.get(story.user_id)
        if group is None:
            group = StoryGroup(author=serialize_public_user(story.author))
            groups[story.user_id] = group
        group.stories.append(_serialize_story(story))
    return list(groups.values())


@router.post("", response_model=StoryRead, status_code=status.HTTP_201_CREATED)
async def create_story(
    media: UploadFile = File(...),
    media_type: MediaType = Form(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> StoryRead:
    allowed = IMAGE_TYPES if media_type == MediaType.IMAGE else VIDEO_TYPES
    stored = await store_media(
        "stories", current_user.id, media, allowed_prefixes=allowed, label=media_type.value
    )
    now = utcnow()
    story = Story(
        user_id=current_user.id,
        media_path=stored.relative_path,
        media_type=media_type,
        created_at=now,
        expires_at=now + timedelta(hours=settings.story_lifetime_hours),
    )
    db.add(story)
    db.commit()
    db.refresh(story)
    return _serialize_story(story)


@router.get("/user/{user_id}", response_model=list[StoryRead])
async def list_user_stories(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[StoryRead]:
    """A single author's unexpired stories, oldest first."""

    author = get_user_or_404(user_id, db)
    stories = db.execute(
        _active_stmt()
        .where(Story.user_id == author.id)
        .order_by(Story.created_at.asc(), Story.id.asc())
    ).scalars().all()
    return [_serialize_story(story) for story in stories]


@router.delete("/{story_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_story(
    story_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    story = db.get(Story, story_id)
    if story is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Story not found")
    if story.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only delete your own stories")
    media_path = story.media_path
    db.delete(story)
    db.commit()
    delete_stored(media_path)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
