"""Translate listing query parameters into repository calls."""
from dataclasses import dataclass, field
from typing import List, Optional

from panorama_api.repository import ImageFilter, ImageRepository, SortSpec, DEFAULT_SORT_FIELD
from panorama_api.schemas import ImageOut, ImageStatsOut, BookmarkSplit, ImageListOut
from panorama_api.settings import settings


def parse_positive_int(value: Optional[str], default: int) -> int:
    """Lenient integer parsing: garbage, zero and negatives give the default."""
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass
class ImageQuery:
    """Parsed GET /images parameters."""
    page: int = 1
    page_size: int = 10
    sort: SortSpec = field(default_factory=SortSpec)
    filters: ImageFilter = field(default_factory=ImageFilter)

    @classmethod
    def from_params(
        cls,
        page: Optional[str] = None,
        page_size: Optional[str] = None,
        sort_field: Optional[str] = None,
        sort_order: Optional[str] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[str] = None,
        bookmarked: Optional[str] = None,
    ) -> "ImageQuery":
        size = min(parse_positive_int(page_size, settings.DEFAULT_PAGE_SIZE), settings.MAX_PAGE_SIZE)
        return cls(
            page=parse_positive_int(page, 1),
            page_size=size,
            sort=SortSpec(
                field=sort_field or DEFAULT_SORT_FIELD,
                ascending=sort_order == "ascend",
            ).resolved(),
            filters=ImageFilter(
                title=title or None,
                description=description or None,
                tags=split_csv(tags),
                bookmarked=[flag.lower() == "true" for flag in split_csv(bookmarked)],
            ),
        )

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.page_size


async def list_images(repo: ImageRepository, owner_id: int, query: ImageQuery) -> ImageListOut:
    items, total = await repo.find_by_owner_paged(
        owner_id, query.filters, query.sort, skip=query.skip, limit=query.page_size
    )
    return ImageListOut(
        data=[ImageOut.from_record(image) for image in items],
        total=total,
        page=query.page,
        page_size=query.page_size,
    )


async def image_stats(repo: ImageRepository, owner_id: int) -> ImageStatsOut:
    stats = await repo.aggregate_stats(owner_id)
    return ImageStatsOut(
        total_images=stats.total_images,
        total_size_bytes=stats.total_size_bytes,
        total_views=stats.total_views,
        bookmark=BookmarkSplit(bookmarked=stats.bookmarked, unbookmarked=stats.unbookmarked),
    )


async def image_tags(repo: ImageRepository, owner_id: int) -> List[str]:
    return await repo.distinct_tags(owner_id)
