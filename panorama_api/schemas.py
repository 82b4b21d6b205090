"""Pydantic schemas for request/response validation."""
from datetime import datetime
from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import List, Optional

from panorama_api.models import Image, User


class CamelModel(BaseModel):
    """Serializes with camelCase keys and accepts either spelling on input."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class ImageOut(CamelModel):
    """Image record output schema."""
    id: int
    user: int
    filename: str
    original_url: str
    thumbnail_url: str
    file_size: int
    mime_type: str
    resolution_width: Optional[int] = None
    resolution_height: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = []
    bookmarked: bool
    view_count: int
    hash: str
    has_share_password: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, image: Image) -> "ImageOut":
        return cls(
            id=image.id,
            user=image.user_id,
            filename=image.filename,
            original_url=image.original_url,
            thumbnail_url=image.thumbnail_url,
            file_size=image.file_size,
            mime_type=image.mime_type,
            resolution_width=image.resolution_width,
            resolution_height=image.resolution_height,
            title=image.title,
            description=image.description,
            tags=image.tags,
            bookmarked=image.bookmarked,
            view_count=image.view_count,
            hash=image.hash,
            has_share_password=image.has_share_password,
            created_at=image.created_at,
            updated_at=image.updated_at,
        )


class ImageListOut(CamelModel):
    """GET /images response."""
    data: List[ImageOut]
    total: int
    page: int
    page_size: int


class BookmarkSplit(CamelModel):
    bookmarked: int
    unbookmarked: int


class ImageStatsOut(CamelModel):
    """GET /images/stats response."""
    total_images: int
    total_size_bytes: int
    total_views: int
    bookmark: BookmarkSplit


class ShareAccessRequest(CamelModel):
    share_password: Optional[str] = None


class ShareAccessOut(CamelModel):
    id: int
    hash: str
    image_url: str


class DetailsUpdate(CamelModel):
    """PATCH /images/{id}/details body. Omitted fields are cleared."""
    title: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    share_password: Optional[str] = None


class BookmarkUpdate(CamelModel):
    bookmarked: Optional[bool] = None  # None toggles


class AIMetadataRequest(CamelModel):
    lang: Optional[str] = None


class AIMetadataOut(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None


class MessageOut(BaseModel):
    message: str


class RegisterRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class UserOut(BaseModel):
    id: int
    email: str
    name: Optional[str] = None

    @classmethod
    def from_record(cls, user: User) -> "UserOut":
        return cls(id=user.id, email=user.email, name=user.name)


class AuthOut(BaseModel):
    user: UserOut
    token: str
