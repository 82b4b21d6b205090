"""SQLAlchemy async models."""
from datetime import datetime, timezone
from typing import List

from sqlalchemy import Column, Integer, String, BigInteger, Boolean, DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import relationship
from panorama_api.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Registered account owning images."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(320), unique=True, index=True, nullable=False)  # Stored lower-cased
    name = Column(String, nullable=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    images = relationship("Image", back_populates="user", cascade="all, delete-orphan")


class Image(Base):
    """Uploaded panorama with its stored artifacts and user-editable details."""
    __tablename__ = "images"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    filename = Column(String, nullable=False)
    original_url = Column(String, nullable=False)
    thumbnail_url = Column(String, nullable=False)
    file_size = Column(BigInteger, nullable=False)
    mime_type = Column(String, nullable=False)
    resolution_width = Column(Integer, nullable=True)
    resolution_height = Column(Integer, nullable=True)

    title = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    bookmarked = Column(Boolean, default=False, nullable=False)
    view_count = Column(Integer, default=0, nullable=False)
    hash = Column(String(64), unique=True, nullable=False)  # Time-salted SHA256 hex
    share_password_hash = Column(String, nullable=True)  # bcrypt
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="images")
    tag_links = relationship(
        "ImageTag",
        back_populates="image",
        cascade="all, delete-orphan",
        order_by="ImageTag.position",
        lazy="selectin",
    )

    # Indexes
    __table_args__ = (
        Index("idx_image_user_created", "user_id", "created_at"),
    )

    @property
    def tags(self) -> List[str]:
        return [link.name for link in self.tag_links]

    @tags.setter
    def tags(self, names: List[str]) -> None:
        self.tag_links = [ImageTag(name=name, position=i) for i, name in enumerate(names)]

    @property
    def has_share_password(self) -> bool:
        return self.share_password_hash is not None


class ImageTag(Base):
    """A tag attached to an image; position keeps the user's ordering."""
    __tablename__ = "image_tags"

    id = Column(Integer, primary_key=True, index=True)
    image_id = Column(Integer, ForeignKey("images.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    name = Column(String, nullable=False, index=True)

    # Relationships
    image = relationship("Image", back_populates="tag_links")
