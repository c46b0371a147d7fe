"""Feed endpoints: posts, likes, comments and follows."""

from __future__ import annotations

from typing import Sequence

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from app.api.deps import get_current_user, get_user_or_404
from app.api.serializers import serialize_public_user
from app.core.clock import utcnow
from app.core.storage import IMAGE_TYPES, delete_stored, store_media
from app.database import get_db
from app.models import Follow, Post, PostComment, PostLike, User
from app.schemas import (
    CommentCreate,
    CommentRead,
    FollowCounts,
    FollowStatus,
    LikeResult,
    PostRead,
    PostUpdate,
)

router = APIRouter(prefix="/posts", tags=["feed"])
follows_router = APIRouter(prefix="/follows", tags=["feed"])


def _count_by_post(model, post_ids: Sequence[int], db: Session) -> dict[int, int]:
    if not post_ids:
        return {}
    stmt = (
        select(model.post_id, func.count(model.id))
        .where(model.post_id.in_(post_ids))
        .group_by(model.post_id)
    )
    return {post_id: count for post_id, count in db.execute(stmt)}


def serialize_posts(posts: Sequence[Post], viewer_id: int, db: Session) -> list[PostRead]:
    post_ids = [post.id for post in posts]
    likes = _count_by_post(PostLike, post_ids, db)
    comments = _count_by_post(PostComment, post_ids, db)
    liked: set[int] = set()
    if post_ids:
        liked = set(
            db.execute(
                select(PostLike.post_id).where(
                    PostLike.post_id.in_(post_ids), PostLike.user_id == viewer_id
                )
            ).scalars()
        )
    return [
        PostRead(
            id=post.id,
            author=serialize_public_user(post.author),
            caption=post.caption,
            image_url=post.image_url,
            likes_count=likes.get(post.id, 0),
            comments_count=comments.get(post.id, 0),
            is_liked=post.id in liked,
            created_at=post.created_at,
            updated_at=post.updated_at,
        )
        for post in posts
    ]


def _require_post(post_id: int, db: Session) -> Post:
    post = db.get(Post, post_id)
    if post is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return post


def _require_owner(post: Post, user: User) -> None:
    if post.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only change your own posts")


def _newest_first(stmt):
    return stmt.options(selectinload(Post.author)).order_by(Post.created_at.desc(), Post.id.desc())


@router.get("", response_model=list[PostRead])
async def read_feed(
    limit: int = Query(default=50, ge=1, le=200),
    before_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[PostRead]:
    """All posts, newest first."""

    stmt = _newest_first(select(Post)).limit(limit)
    if before_id is not None:
        stmt = stmt.where(Post.id < before_id)
    posts = db.execute(stmt).scalars().all()
    return serialize_posts(posts, current_user.id, db)


@router.post("", response_model=PostRead, status_code=status.HTTP_201_CREATED)
async def create_post(
    caption: str | None = Form(default=None),
    image: UploadFile | None = File(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PostRead:
    """Publish a post; it needs a caption, an image or both."""

    text = (caption or "").strip() or None
    has_image = image is not None and bool(image.filename)
    if text is None and not has_image:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A post needs a caption or an image")

    image_path = None
    if has_image:
        stored = await store_media(
            "posts", current_user.id, image, allowed_prefixes=IMAGE_TYPES, label="image"
        )
        image_path = stored.relative_path

    now = utcnow()
    post = Post(user_id=current_user.id, caption=text, image_path=image_path, created_at=now, updated_at=now)
    db.add(post)
    db.commit()
    db.refresh(post)
    return serialize_posts([post], current_user.id, db)[0]


@router.get("/user/{user_id}", response_model=list[PostRead])
async def read_user_posts(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[PostRead]:
    author = get_user_or_404(user_id, db)
    posts = db.execute(_newest_first(select(Post).where(Post.user_id == author.id))).scalars().all()
    return serialize_posts(posts, current_user.id, db)


@router.patch("/{post_id}", response_model=PostRead)
async def update_post(
    post_id: int,
    payload: PostUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PostRead:
    post = _require_post(post_id, db)
    _require_owner(post, current_user)
    caption = payload.caption or None
    if caption is None and not post.image_path:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A post needs a caption or an image")
    post.caption = caption
    post.updated_at = utcnow()
    db.add(post)
    db.commit()
    db.refresh(post)
    return serialize_posts([post], current_user.id, db)[0]


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    post = _require_post(post_id, db)
    _require_owner(post, current_user)
    image_path = post.image_path
    db.delete(post)
    db.commit()
    delete_stored(image_path)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _like_result(post_id: int, user_id: int, db: Session) -> LikeResult:
    likes = _count_by_post(PostLike, [post_id], db).get(post_id, 0)
    is_liked = db.execute(
        select(PostLike.id).where(PostLike.post_id == post_id, PostLike.user_id == user_id)
    ).first() is not None
    return LikeResult(post_id=post_id, is_liked=is_liked, likes_count=likes)


@router.post("/{post_id}/like", response_model=LikeResult)
async def like_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> LikeResult:
    post = _require_post(post_id, db)
    existing = db.execute(
        select(PostLike).where(PostLike.post_id == post.id, PostLike.user_id == current_user.id)
    ).scalar_one_or_none()
    if existing is None:
        db.add(PostLike(post_id=post.id, user_id=current_user.id))
        db.commit()
    return _like_result(post.id, current_user.id, db)


@router.delete("/{post_id}/like", response_model=LikeResult)
async def unlike_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> LikeResult:
    post = _require_post(post_id, db)
    existing = db.execute(
        select(PostLike).where(PostLike.post_id == post.id, PostLike.user_id == current_user.id)
    ).scalar_one_or_none()
    if existing is not None:
        db.delete(existing)
        db.commit()
    return _like_result(post.id, current_user.id, db)


def _serialize_comment(comment: PostComment) -> CommentRead:
    return CommentRead(
        id=comment.id,
        post_id=comment.post_id,
        author=serialize_public_user(comment.author),
        content=comment.content,
        created_at=comment.created_at,
    )


@router.get("/{post_id}/comments", response_model=list[CommentRead])
async def list_comments(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[CommentRead]:
    post = _require_post(post_id, db)
    comments = db.execute(
        select(PostComment)
        .where(PostComment.post_id == post.id)
        .options(selectinload(PostComment.author))
        .order_by(PostComment.created_at.asc(), PostComment.id.asc())
    ).scalars().all()
    return [_serialize_comment(comment) for comment in comments]


@router.post("/{post_id}/comments", response_model=CommentRead, status_code=status.HTTP_201_CREATED)
async def add_comment(
    post_id: int,
    payload: CommentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CommentRead:
    post = _require_post(post_id, db)
    content = payload.content.strip()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Comment cannot be empty")
    comment = PostComment(post_id=post.id, user_id=current_user.id, content=content, created_at=utcnow())
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return _serialize_comment(comment)


def _follow_edge(follower_id: int, following_id: int, db: Session) -> Follow | None:
    return db.execute(
        select(Follow).where(Follow.follower_id == follower_id, Follow.following_id == following_id)
    ).scalar_one_or_none()


@follows_router.post("/{user_id}", response_model=FollowStatus)
async def follow_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FollowStatus:
    target = get_user_or_404(user_id, db)
    if target.id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot follow yourself")
    if _follow_edge(current_user.id, target.id, db) is None:
        db.add(Follow(follower_id=current_user.id, following_id=target.id))
        db.commit()
    return FollowStatus(user_id=target.id, is_following=True)


@follows_router.delete("/{user_id}", response_model=FollowStatus)
async def unfollow_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FollowStatus:
    edge = _follow_edge(current_user.id, user_id, db)
    if edge is not None:
        db.delete(edge)
        db.commit()
    return FollowStatus(user_id=user_id, is_following=False)


@follows_router.get("/{user_id}", response_model=FollowStatus)
async def read_follow_status(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FollowStatus:
    return FollowStatus(
        user_id=user_id,
        is_following=_follow_edge(current_user.id, user_id, db) is not None,
    )


@follows_router.get("/{user_id}/counts", response_model=FollowCounts)
async def read_follow_counts(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FollowCounts:
    user = get_user_or_404(user_id, db)
    followers = db.execute(
        select(func.count(Follow.id)).where(Follow.following_id == user.id)
    ).scalar_one()
    following = db.execute(
        select(func.count(Follow.id)).where(Follow.follower_id == user.id)
    ).scalar_one()
    return FollowCounts(user_id=user.id, followers=followers, following=following)
