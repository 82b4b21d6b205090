"""Persistence of image and user records."""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sqlalchemy import select, func, update as sql_update, asc, desc, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from panorama_api.errors import Conflict, DuplicateHash
from panorama_api.models import Image, ImageTag, User, utcnow

# Public sort names -> columns
SORTABLE_FIELDS = {
    "title": Image.title,
    "fileSize": Image.file_size,
    "viewCount": Image.view_count,
    "createdAt": Image.created_at,
    "updatedAt": Image.updated_at,
    "bookmarked": Image.bookmarked,
}
DEFAULT_SORT_FIELD = "createdAt"


@dataclass
class ImageFilter:
    """Owner-scoped listing filter. Empty fields do not constrain the query."""
    title: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    bookmarked: List[bool] = field(default_factory=list)


@dataclass
class SortSpec:
    field: str = DEFAULT_SORT_FIELD
    ascending: bool = False

    def resolved(self) -> "SortSpec":
        """Fields outside the allow-list fall back to createdAt descending."""
        if self.field not in SORTABLE_FIELDS:
            return SortSpec(DEFAULT_SORT_FIELD, ascending=False)
        return self


@dataclass
class ImageStats:
    total_images: int
    total_size_bytes: int
    total_views: int
    bookmarked: int
    unbookmarked: int


def _contains(value: str):
    """ILIKE pattern for a literal substring."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class ImageRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, image: Image) -> Image:
        """
        Insert a new image record.

        The row is flushed but not committed so callers can finish related
        work (moving artifacts) before committing.

        Raises:
            DuplicateHash: If another record already has this hash
        """
        existing = await self.find_by_hash(image.hash)
        if existing is not None:
            raise DuplicateHash(image.hash)

        self.session.add(image)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            raise DuplicateHash(image.hash)
        return image

    def _owner_filtered(self, stmt, owner_id: int, filters: ImageFilter):
        stmt = stmt.where(Image.user_id == owner_id)
        if filters.title:
            stmt = stmt.where(Image.title.ilike(_contains(filters.title), escape="\\"))
        if filters.description:
            stmt = stmt.where(Image.description.ilike(_contains(filters.description), escape="\\"))
        if filters.tags:
            tagged = select(ImageTag.image_id).where(ImageTag.name.in_(filters.tags))
            stmt = stmt.where(Image.id.in_(tagged))
        if filters.bookmarked:
            stmt = stmt.where(Image.bookmarked.in_(filters.bookmarked))
        return stmt

    async def find_by_owner_paged(
        self,
        owner_id: int,
        filters: ImageFilter,
        sort: SortSpec,
        skip: int,
        limit: int,
    ) -> Tuple[List[Image], int]:
        """Return one page of the owner's images and the full filtered count."""
        sort = sort.resolved()
        column = SORTABLE_FIELDS[sort.field]
        direction = asc if sort.ascending else desc

        count_stmt = self._owner_filtered(select(func.count(Image.id)), owner_id, filters)
        total = (await self.session.execute(count_stmt)).scalar_one()

        stmt = (
            self._owner_filtered(select(Image), owner_id, filters)
            .order_by(direction(column), direction(Image.id))
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def find_one_by_owner(self, image_id: int, owner_id: int) -> Optional[Image]:
        result = await self.session.execute(
            select(Image).where(Image.id == image_id, Image.user_id == owner_id)
        )
        return result.scalar_one_or_none()

    async def find_by_hash(self, image_hash: str) -> Optional[Image]:
        result = await self.session.execute(select(Image).where(Image.hash == image_hash))
        return result.scalar_one_or_none()

    async def aggregate_stats(self, owner_id: int) -> ImageStats:
        result = await self.session.execute(
            select(
                func.count(Image.id),
                func.coalesce(func.sum(Image.file_size), 0),
                func.coalesce(func.sum(Image.view_count), 0),
                func.coalesce(func.sum(case((Image.bookmarked.is_(True), 1), else_=0)), 0),
            ).where(Image.user_id == owner_id)
        )
        total, size, views, bookmarked = result.one()
        return ImageStats(
            total_images=total,
            total_size_bytes=int(size),
            total_views=int(views),
            bookmarked=int(bookmarked),
            unbookmarked=total - int(bookmarked),
        )

    async def distinct_tags(self, owner_id: int) -> List[str]:
        result = await self.session.execute(
            select(ImageTag.name)
            .join(Image, Image.id == ImageTag.image_id)
            .where(Image.user_id == owner_id)
            .distinct()
        )
        return sorted(result.scalars().all())

    async def update(self, image: Image) -> Image:
        image.updated_at = utcnow()
        self.session.add(image)
        await self.session.commit()
        return image

    async def delete(self, image: Image) -> None:
        await self.session.delete(image)
        await self.session.commit()

    async def increment_view_count(self, image: Image) -> int:
        """Atomically bump the view counter and return the new value."""
        await self.session.execute(
            sql_update(Image)
            .where(Image.id == image.id)
            .values(view_count=Image.view_count + 1)
        )
        await self.session.commit()
        await self.session.refresh(image, ["view_count"])
        return image.view_count


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user: User) -> User:
        """
        Raises:
            Conflict: If the email is already registered
        """
        self.session.add(user)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise Conflict("Email is already in use.")
        await self.session.refresh(user)
        return user

    async def find_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(
            select(User).where(User.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def find_by_id(self, user_id: int) -> Optional[User]:
        return await self.session.get(User, user_id)
