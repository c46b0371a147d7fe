"""create initial tables

Revision ID: 20261019_01
Revises: 
Create Date: 2026-10-19 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


FRIEND_REQUEST_STATUS = sa.Enum("pending", "accepted", "declined", name="friend_request_status")
STORY_MEDIA_TYPE = sa.Enum("image", "video", name="story_media_type")
CALL_SIGNAL_TYPE = sa.Enum(
    "offer", "answer", "ice-candidate", "end-call", name="call_signal_type"
)
CALL_STATUS = sa.Enum("calling", "active", "declined", "ended", "missed", name="call_status")


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        onupdate=sa.func.now(),
        nullable=False,
    )


def _user_fk(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.Integer(),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=128), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("avatar_path", sa.String(length=512), nullable=True),
        sa.Column("avatar_content_type", sa.String(length=128), nullable=True),
        sa.Column("avatar_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_online", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=True),
        sa.Column("onesignal_player_id", sa.String(length=128), nullable=True),
        sa.Column("push_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("device_platform", sa.String(length=32), nullable=True),
        sa.Column("sound_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "browser_notifications_enabled",
            sa.Boolean(),
            nullable=False,
            server_default=sa.true(),
        ),
        sa.Column(
            "toast_notifications_enabled",
            sa.Boolean(),
            nullable=False,
            server_default=sa.true(),
        ),
        _created_at(),
        _updated_at(),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "friend_links",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        _user_fk("requester_id"),
        _user_fk("addressee_id"),
        sa.Column("status", FRIEND_REQUEST_STATUS, nullable=False, server_default="pending"),
        _created_at(),
        _updated_at(),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("requester_id", "addressee_id", name="uq_friend_link_pair"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "direct_conversations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        _user_fk("user_a_id"),
        _user_fk("user_b_id"),
        _created_at(),
        _updated_at(),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_a_id", "user_b_id", name="uq_direct_conversation_pair"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "direct_messages",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "conversation_id",
            sa.Integer(),
            sa.ForeignKey("direct_conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk("sender_id"),
        _user_fk("recipient_id"),
        sa.Column(
            "reply_to_id",
            sa.Integer(),
            sa.ForeignKey("direct_messages.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("audio_path", sa.String(length=512), nullable=True),
        sa.Column("image_path", sa.String(length=512), nullable=True),
        sa.Column("is_edited", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("edited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        mysql_charset="utf8mb4",
    )
    op.create_index(
        "ix_direct_messages_conversation",
        "direct_messages",
        ["conversation_id", "created_at"],
    )
    op.create_index("ix_direct_messages_unread", "direct_messages", ["recipient_id", "read_at"])

    op.create_table(
        "direct_message_hides",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "message_id",
            sa.Integer(),
            sa.ForeignKey("direct_messages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk("user_id"),
        _created_at(),
        sa.UniqueConstraint("message_id", "user_id", name="uq_direct_message_hide"),
    )

    op.create_table(
        "message_reactions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "message_id",
            sa.Integer(),
            sa.ForeignKey("direct_messages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk("user_id"),
        sa.Column("emoji", sa.String(length=32), nullable=False),
        _created_at(),
        sa.UniqueConstraint("message_id", "user_id", "emoji", name="uq_message_reaction"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_reactions_message", "message_reactions", ["message_id"])

    op.create_table(
        "chat_themes",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "conversation_id",
            sa.Integer(),
            sa.ForeignKey("direct_conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk("user_id"),
        sa.Column("theme_key", sa.String(length=32), nullable=False),
        _updated_at(),
        sa.UniqueConstraint("conversation_id", "user_id", name="uq_chat_theme_owner"),
    )

    op.create_table(
        "call_signals",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "conversation_id",
            sa.Integer(),
            sa.ForeignKey("direct_conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "call_id",
            sa.Integer(),
            sa.ForeignKey("call_signals.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _user_fk("caller_id"),
        _user_fk("receiver_id"),
        sa.Column("signal_type", CALL_SIGNAL_TYPE, nullable=False),
        sa.Column("signal_data", sa.JSON(), nullable=False),
        sa.Column("status", CALL_STATUS, nullable=False),
        _created_at(),
        _updated_at(),
        sa.Column("answered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_call_signals_receiver", "call_signals", ["receiver_id", "created_at"])
    op.create_index("ix_call_signals_call", "call_signals", ["call_id"])

    op.create_table(
        "posts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        _user_fk("user_id"),
        sa.Column("caption", sa.Text(), nullable=True),
        sa.Column("image_path", sa.String(length=512), nullable=True),
        _created_at(),
        _updated_at(),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_posts_created_at", "posts", ["created_at"])

    op.create_table(
        "post_comments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "post_id",
            sa.Integer(),
            sa.ForeignKey("posts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk("user_id"),
        sa.Column("content", sa.Text(), nullable=False),
        _created_at(),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_post_comments_post", "post_comments", ["post_id", "created_at"])

    op.create_table(
        "post_likes",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "post_id",
            sa.Integer(),
            sa.ForeignKey("posts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk("user_id"),
        _created_at(),
        sa.UniqueConstraint("post_id", "user_id", name="uq_post_like"),
    )

    op.create_table(
        "follows",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        _user_fk("follower_id"),
        _user_fk("following_id"),
        _created_at(),
        sa.UniqueConstraint("follower_id", "following_id", name="uq_follow_pair"),
    )
    op.create_index("ix_follows_following", "follows", ["following_id"])

    op.create_table(
        "stories",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        _user_fk("user_id"),
        sa.Column("media_path", sa.String(length=512), nullable=False),
        sa.Column("media_type", STORY_MEDIA_TYPE, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_stories_expires_at", "stories", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_stories_expires_at", table_name="stories")
    op.drop_table("stories")
    op.drop_index("ix_follows_following", table_name="follows")
    op.drop_table("follows")
    op.drop_table("post_likes")
    op.drop_index("ix_post_comments_post", table_name="post_comments")
    op.drop_table("post_comments")
    op.drop_index("ix_posts_created_at", table_name="posts")
    op.drop_table("posts")
    op.drop_index("ix_call_signals_call", table_name="call_signals")
    op.drop_index("ix_call_signals_receiver", table_name="call_signals")
    op.drop_table("call_signals")
    op.drop_table("chat_themes")
    op.drop_index("ix_reactions_message", table_name="message_reactions")
    op.drop_table("message_reactions")
    op.drop_table("direct_message_hides")
    op.drop_index("ix_direct_messages_unread", table_name="direct_messages")
    op.drop_index("ix_direct_messages_conversation", table_name="direct_messages")
    op.drop_table("direct_messages")
    op.drop_table("direct_conversations")
    op.drop_table("friend_links")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in (CALL_STATUS, CALL_SIGNAL_TYPE, STORY_MEDIA_TYPE, FRIEND_REQUEST_STATUS):
        enum.drop(bind, checkfirst=True)
