"""Upload orchestration: thumbnail, fingerprint, artifacts and record per file."""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from panorama_api.errors import AppError, ValidationError
from panorama_api.image_utils import compute_fingerprint, extract_dimensions, resize
from panorama_api.models import Image
from panorama_api.repository import ImageRepository
from panorama_api.settings import settings
from panorama_api.storage import ArtifactStore

logger = logging.getLogger(__name__)


@dataclass
class UploadItem:
    data: bytes
    original_name: Optional[str]
    size: int
    mime_type: str


@dataclass
class UploadFailure:
    filename: Optional[str]
    message: str


@dataclass
class UploadResult:
    created: List[Image] = field(default_factory=list)
    failed: List[UploadFailure] = field(default_factory=list)


class UploadOrchestrator:
    """
    Processes a batch of uploaded files for one owner.

    Files are handled one after another and independently: a failing file
    is reported in ``UploadResult.failed`` and the rest of the batch goes on.
    For each file the artifacts are staged, the record is inserted, and only
    then are the artifacts moved to their public location.
    """

    def __init__(
        self,
        session: AsyncSession,
        store: ArtifactStore,
        thumbnail_size: Tuple[int, int] = None,
    ):
        self.session = session
        self.repo = ImageRepository(session)
        self.store = store
        self.thumbnail_size = thumbnail_size or settings.THUMBNAIL_SIZE

    async def upload_batch(self, items: List[UploadItem], owner_id: int) -> UploadResult:
        result = UploadResult()
        if not items:
            return result

        await self.store.ensure_directories()

        for item in items:
            try:
                image = await self._upload_one(item, owner_id)
            except AppError as e:
                logger.warning("Upload of %s failed: %s", item.original_name, e.message)
                result.failed.append(UploadFailure(item.original_name, e.message))
            except Exception as e:
                logger.exception("Upload of %s failed", item.original_name)
                result.failed.append(UploadFailure(item.original_name, str(e)))
            else:
                result.created.append(image)

        logger.info(
            "Upload batch for user %s: %d created, %d failed",
            owner_id, len(result.created), len(result.failed),
        )
        return result

    async def _upload_one(self, item: UploadItem, owner_id: int) -> Image:
        if item.size > settings.MAX_UPLOAD_BYTES:
            raise ValidationError(f"File size exceeds maximum of {settings.MAX_UPLOAD_BYTES} bytes")

        filename = await self.store.make_filename(item.original_name)
        dimensions = extract_dimensions(item.data)
        fingerprint = compute_fingerprint(item.data)
        # Raises InvalidImage for undecodable data, before anything is written
        thumbnail = resize(item.data, *self.thumbnail_size, mode="cover")

        await self.store.stage(filename, item.data, thumbnail)
        try:
            image = Image(
                user_id=owner_id,
                filename=filename,
                original_url=self.store.original_url(filename),
                thumbnail_url=self.store.thumbnail_url(filename),
                file_size=item.size,
                mime_type=item.mime_type,
                resolution_width=dimensions[0] if dimensions else None,
                resolution_height=dimensions[1] if dimensions else None,
                hash=fingerprint,
                bookmarked=False,
                view_count=0,
            )
            image.tags = []
            await self.repo.create(image)
            await self.store.commit(filename)
            await self.session.commit()
        except BaseException:
            await self.session.rollback()
            await self.store.discard(filename)
            await self.store.remove(filename)
            raise

        # A later item's rollback must not expire records already returned
        self.session.expunge(image)
        return image
