from datetime import datetime
from typing import Annotated, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StringConstraints, field_validator

from jevah.models import NOTIFICATION_TYPES

Role = Literal[
    "learner",
    "parent",
    "educator",
    "moderator",
    "admin",
    "content_creator",
    "vendor",
    "church_admin",
    "artist",
]
MediaContentType = Literal[
    "videos", "music", "audio", "podcast", "sermon", "ebook", "devotional", "live"
]


def _trimmed(min_length: int, max_length: int):
    return Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=min_length, max_length=max_length)
    ]


# --- User ---

class UserCreate(BaseModel):
    username: _trimmed(3, 50)
    email: _trimmed(3, 255)
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    bio: str | None = Field(None, max_length=1000)
    role: Role = "learner"


class UserUpdate(BaseModel):
    username: _trimmed(3, 50) | None = None
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    avatar_url: str | None = Field(None, max_length=500)
    bio: str | None = Field(None, max_length=1000)


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    first_name: str | None
    last_name: str | None
    avatar_url: str | None
    bio: str | None
    role: str
    is_banned: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# --- Admin ---

class BanRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)
    duration_days: int | None = Field(None, ge=1, le=3650)


class RoleUpdate(BaseModel):
    role: Role


class ModerationUpdate(BaseModel):
    status: Literal["approved", "rejected", "under_review"]
    admin_notes: str | None = Field(None, max_length=2000)


# --- Forum ---

class ForumCreate(BaseModel):
    title: _trimmed(3, 100)
    description: _trimmed(10, 500)


class EmbeddedLink(BaseModel):
    url: str = Field(max_length=2000)
    type: Literal["video", "article", "resource", "other"]
    title: str | None = Field(None, max_length=200)
    description: str | None = Field(None, max_length=500)
    thumbnail: str | None = None

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        parsed = urlparse(value.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("url must be an absolute http(s) URL")
        return value.strip()


class ForumPostCreate(BaseModel):
    content: _trimmed(1, 5000)
    embedded_links: list[EmbeddedLink] = Field(default_factory=list, max_length=5)
    tags: list[str] = Field(default_factory=list, max_length=10)


class ForumPostUpdate(BaseModel):
    content: _trimmed(1, 5000) | None = None
    embedded_links: list[EmbeddedLink] | None = Field(None, max_length=5)


# --- Poll ---

class PollCreate(BaseModel):
    question: _trimmed(5, 200)
    description: str | None = Field(None, max_length=500)
    options: list[_trimmed(1, 200)] = Field(min_length=2, max_length=10)
    multi_select: bool = False
    closes_at: datetime | None = None


class PollUpdate(BaseModel):
    question: _trimmed(5, 200) | None = None
    description: str | None = Field(None, max_length=500)
    closes_at: datetime | None = None


class PollVoteRequest(BaseModel):
    option_indexes: list[int] = Field(min_length=1, max_length=10)


# --- Prayer ---

class PrayerCreate(BaseModel):
    content: _trimmed(1, 2000)
    anonymous: bool = False
    media: list[str] = Field(default_factory=list, max_length=10)


class PrayerUpdate(BaseModel):
    content: _trimmed(1, 2000) | None = None
    anonymous: bool | None = None
    media: list[str] | None = Field(None, max_length=10)


class PrayerCommentCreate(BaseModel):
    content: _trimmed(1, 2000)
    parent_comment_id: int | None = None


# --- Comment ---

class CommentCreate(BaseModel):
    content_id: int
    content_type: Literal["media", "devotional", "ebook", "podcast", "prayer", "forum_post"]
    content: _trimmed(1, 1000)
    parent_comment_id: int | None = None

    @field_validator("content_type")
    @classmethod
    def _normalise_type(cls, value: str) -> str:
        # Devotionals, ebooks and podcasts all live in the media table.
        return "media" if value in ("devotional", "ebook", "podcast") else value


class CommentUpdate(BaseModel):
    content: _trimmed(1, 1000)


class CommentHide(BaseModel):
    reason: _trimmed(1, 500)


# --- Bookmark ---

class BulkBookmarkRequest(BaseModel):
    media_ids: list[int] = Field(min_length=1, max_length=100)
    action: Literal["add", "remove"]


# --- Media ---

class MediaCreate(BaseModel):
    title: _trimmed(1, 300)
    description: str | None = None
    speaker: str | None = Field(None, max_length=200)
    category: str | None = Field(None, max_length=100)
    content_type: MediaContentType
    file_url: _trimmed(1, 1000)
    thumbnail_url: str | None = Field(None, max_length=1000)
    duration: int | None = Field(None, ge=0)


class ShareRequest(BaseModel):
    platform: str | None = Field(None, max_length=50)


class MediaReportCreate(BaseModel):
    reason: Literal[
        "inappropriate_content",
        "non_gospel_content",
        "explicit_language",
        "violence",
        "sexual_content",
        "blasphemy",
        "spam",
        "copyright",
        "other",
    ]
    description: Annotated[str, StringConstraints(strip_whitespace=True, max_length=1000)] | None = None


class ReportReview(BaseModel):
    status: Literal["reviewed", "resolved", "dismissed"]
    admin_notes: Annotated[str, StringConstraints(strip_whitespace=True, max_length=2000)] | None = None


# --- Audio ---

class AudioTrackCreate(BaseModel):
    title: _trimmed(1, 300)
    singer: _trimmed(1, 200)
    category: str | None = Field(None, max_length=100)
    file_url: _trimmed(1, 1000)
    thumbnail_url: str | None = Field(None, max_length=1000)
    duration: int | None = Field(None, ge=0)


class AudioTrackUpdate(BaseModel):
    title: _trimmed(1, 300) | None = None
    singer: _trimmed(1, 200) | None = None
    category: str | None = Field(None, max_length=100)
    thumbnail_url: str | None = Field(None, max_length=1000)
    duration: int | None = Field(None, ge=0)


# --- Playback ---

class PlaybackStart(BaseModel):
    media_id: int
    duration: float | None = Field(None, ge=1)
    position: float | None = Field(None, ge=0)
    device_info: str | None = Field(None, max_length=255)


class PlaybackProgress(BaseModel):
    session_id: int
    position: float = Field(ge=0)
    duration: float | None = Field(None, ge=1)
    progress_percentage: float | None = Field(None, ge=0, le=100)


class PlaybackSessionRef(BaseModel):
    session_id: int


class PlaybackEnd(BaseModel):
    session_id: int
    reason: Literal["completed", "stopped", "error"] = "stopped"
    final_position: float | None = Field(None, ge=0)


# --- Notifications ---

class NotificationPreferencesUpdate(BaseModel):
    preferences: dict[str, bool]

    @field_validator("preferences")
    @classmethod
    def _known_types(cls, value: dict[str, bool]) -> dict[str, bool]:
        unknown = sorted(set(value) - set(NOTIFICATION_TYPES))
        if unknown:
            raise ValueError(f"Unknown notification types: {', '.join(unknown)}")
        return value


# --- Push ---

class PushTokenRequest(BaseModel):
    device_token: _trimmed(1, 255)


class PushPreferencesUpdate(BaseModel):
    new_followers: bool | None = None
    media_likes: bool | None = None
    media_comments: bool | None = None
    media_shares: bool | None = None
    merch_purchases: bool | None = None
    song_downloads: bool | None = None
    subscription_updates: bool | None = None
    security_alerts: bool | None = None
    live_streams: bool | None = None
    new_messages: bool | None = None


class PushEnabledRequest(BaseModel):
    enabled: StrictBool


class PushBroadcast(BaseModel):
    title: _trimmed(1, 200)
    body: _trimmed(1, 1000)
    data: dict = Field(default_factory=dict)


class PushSendRequest(PushBroadcast):
    user_ids: list[int] = Field(min_length=1, max_length=1000)


# --- Pagination ---

class PaginatedResponse(BaseModel):
    items: list
    total: int
    page: int
    page_size: int
    pages: int
    has_more: bool = False
