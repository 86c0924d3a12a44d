from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from conduit.database import Base

# ---------------------------------------------------------------------------
# Association table: Article <-> Tag (many-to-many)
# ---------------------------------------------------------------------------
article_tags = Table(
    "article_tags",
    Base.metadata,
    Column("article_id", Integer, ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)

# ---------------------------------------------------------------------------
# Association table: User -> Article favorites (many-to-many)
# ---------------------------------------------------------------------------
favorites = Table(
    "favorites",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("article_id", Integer, ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True),
)

# ---------------------------------------------------------------------------
# Association table: User -> User follow edges (follower follows following)
# ---------------------------------------------------------------------------
followings = Table(
    "followings",
    Base.metadata,
    Column("follower_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("following_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    bio: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships — raise + viewonly: populated only by the hydrator,
    # never flushed back to the follow table; unhydrated access raises.
    followers: Mapped[List["User"]] = relationship(
        "User",
        secondary=followings,
        primaryjoin=lambda: User.id == followings.c.following_id,
        secondaryjoin=lambda: User.id == followings.c.follower_id,
        lazy="raise",
        viewonly=True,
    )

    def is_followed_by(self, viewer: Optional["User"]) -> bool:
        """True when *viewer* is among the hydrated followers; None never follows."""
        if viewer is None:
            return False
        return any(follower.id == viewer.id for follower in self.followers)

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r}>"


# ---------------------------------------------------------------------------
# Tag
# ---------------------------------------------------------------------------
class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Tag id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Article
# ---------------------------------------------------------------------------
class Article(Base):
    __tablename__ = "articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    slug: Mapped[str] = mapped_column(String(350), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Foreign key — set at creation, never updated.
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Relationships — all raise + viewonly; the hydrator attaches them on
    # every read and nothing on the read path writes them back.
    author: Mapped[Optional["User"]] = relationship("User", lazy="raise", viewonly=True)
    tags: Mapped[List["Tag"]] = relationship(
        "Tag",
        secondary=article_tags,
        order_by=lambda: Tag.id,
        lazy="raise",
        viewonly=True,
    )
    favorited_by: Mapped[List["User"]] = relationship(
        "User", secondary=favorites, lazy="raise", viewonly=True
    )

    @property
    def favorites_count(self) -> int:
        return len(self.favorited_by)

    @property
    def tag_names(self) -> list[str]:
        return [tag.name for tag in self.tags]

    def is_favorited_by(self, viewer: Optional["User"]) -> bool:
        if viewer is None:
            return False
        return any(user.id == viewer.id for user in self.favorited_by)

    def __repr__(self) -> str:
        return f"<Article id={self.id} slug={self.slug!r}>"
