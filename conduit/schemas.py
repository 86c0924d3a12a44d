from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from conduit.models import Article, User


# --- Filters ---
#
# Every field is optional; None means "unconstrained".  limit/offset are
# clamped to non-negative values by the predicate builder; a limit of 0
# or None means "no limit".

class ArticleFilter(BaseModel):
    id: int | None = None
    title: str | None = None
    description: str | None = None
    author_id: int | None = None
    author_username: str | None = None
    tag: str | None = None
    slug: str | None = None
    favorited_by: str | None = None

    limit: int | None = None
    offset: int | None = None


class UserFilter(BaseModel):
    id: int | None = None
    email: str | None = None
    username: str | None = None

    limit: int | None = None
    offset: int | None = None


class TagFilter(BaseModel):
    name: str | None = None

    limit: int | None = None
    offset: int | None = None


# --- User ---

class UserCreate(BaseModel):
    email: str = Field(max_length=255)
    username: str = Field(max_length=100)
    password_hash: str
    bio: str = ""
    image: str = ""


class UserPatch(BaseModel):
    """Fields to change; None leaves the stored value untouched."""

    email: str | None = Field(None, max_length=255)
    username: str | None = Field(None, max_length=100)
    image: str | None = None
    bio: str | None = None
    password_hash: str | None = None


class UserResponse(BaseModel):
    email: str
    username: str
    bio: str
    image: str
    model_config = ConfigDict(from_attributes=True)


class ProfileResponse(BaseModel):
    username: str
    bio: str
    image: str
    following: bool = False

    @classmethod
    def for_viewer(cls, user: User, viewer: User | None = None) -> "ProfileResponse":
        """Profile of *user* as seen by *viewer* (None for anonymous readers)."""
        return cls(
            username=user.username,
            bio=user.bio,
            image=user.image,
            following=user.is_followed_by(viewer),
        )


# --- Article ---

class ArticleCreate(BaseModel):
    title: str = Field(max_length=300)
    body: str
    description: str = Field("", max_length=500)
    slug: str | None = Field(None, max_length=350)  # derived from title when omitted
    author_id: int
    tags: list[str] = []  # tag names, linked in input order

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, tags: list[str]) -> list[str]:
        # Keep first occurrence; a repeated name would collide on article_tags.
        return list(dict.fromkeys(tags))


class ArticleResponse(BaseModel):
    slug: str
    title: str
    description: str
    body: str
    tag_list: list[str] = []
    created_at: datetime
    updated_at: datetime
    favorited: bool = False
    favorites_count: int = 0
    author: ProfileResponse

    @classmethod
    def for_viewer(cls, article: Article, viewer: User | None = None) -> "ArticleResponse":
        """Serialise a hydrated *article* relative to *viewer*."""
        return cls(
            slug=article.slug,
            title=article.title,
            description=article.description,
            body=article.body,
            tag_list=article.tag_names,
            created_at=article.created_at,
            updated_at=article.updated_at,
            favorited=article.is_favorited_by(viewer),
            favorites_count=article.favorites_count,
            author=ProfileResponse.for_viewer(article.author, viewer),
        )
