"""API endpoints for panorama images."""
from fastapi import APIRouter, BackgroundTasks, UploadFile, File, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from panorama_api.auth import AuthenticatedUser, get_current_user
from panorama_api.db import get_db
from panorama_api.errors import ExternalServiceUnavailable, InternalError, NotFound, ValidationError
from panorama_api.query import ImageQuery, list_images, image_stats, image_tags
from panorama_api.repository import ImageRepository
from panorama_api.schemas import (
    AIMetadataOut, AIMetadataRequest, BookmarkUpdate, DetailsUpdate, ImageListOut,
    ImageOut, ImageStatsOut, MessageOut, ShareAccessOut, ShareAccessRequest,
)
from panorama_api.settings import settings
from panorama_api.sharing import access_shared_image, hash_share_password
from panorama_api.storage import ArtifactStore, get_artifact_store
from panorama_api.suggester import MetadataSuggester, get_metadata_suggester
from panorama_api.uploads import UploadItem, UploadOrchestrator

router = APIRouter(prefix=f"{settings.API_PREFIX}/images", tags=["images"])


async def get_owned_image(repo: ImageRepository, image_id: int, user: AuthenticatedUser):
    image = await repo.find_one_by_owner(image_id, user.id)
    if image is None:
        raise NotFound("Image not found")
    return image


@router.post("/hash/{image_hash}", response_model=ShareAccessOut)
async def get_image_by_hash(
    image_hash: str,
    request: Request,
    payload: Optional[ShareAccessRequest] = None,
    db: AsyncSession = Depends(get_db)
):
    """Public access to a shared image; wrong passwords look like missing images."""
    supplied = payload.share_password if payload else None
    return await access_shared_image(
        ImageRepository(db), image_hash, supplied, base_url=str(request.base_url)
    )


@router.get("", response_model=ImageListOut)
async def get_images(
    page: Optional[str] = None,
    page_size: Optional[str] = Query(None, alias="pageSize"),
    sort_field: Optional[str] = Query(None, alias="sortField"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    title: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[str] = None,
    bookmarked: Optional[str] = None,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List the caller's images with filtering, sorting and pagination."""
    query = ImageQuery.from_params(
        page=page,
        page_size=page_size,
        sort_field=sort_field,
        sort_order=sort_order,
        title=title,
        description=description,
        tags=tags,
        bookmarked=bookmarked,
    )
    return await list_images(ImageRepository(db), user.id, query)


@router.get("/stats", response_model=ImageStatsOut)
async def get_image_stats(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await image_stats(ImageRepository(db), user.id)


@router.get("/tags", response_model=List[str])
async def get_all_tags(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await image_tags(ImageRepository(db), user.id)


@router.post("/upload-multiple", response_model=List[ImageOut], status_code=status.HTTP_201_CREATED)
async def upload_multiple_images(
    images: Optional[List[UploadFile]] = File(None),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    store: ArtifactStore = Depends(get_artifact_store)
):
    """
    Upload a batch of images.

    Each file is processed on its own; the response lists the records that
    were created even when some files failed, which may be none of them.
    Per-file failures are logged by the orchestrator.
    """
    if not images:
        raise ValidationError("No files uploaded")

    items = []
    for upload in images:
        data = await upload.read()
        items.append(UploadItem(
            data=data,
            original_name=upload.filename,
            size=len(data),
            mime_type=upload.content_type or "application/octet-stream",
        ))

    result = await UploadOrchestrator(db, store).upload_batch(items, user.id)

    return [ImageOut.from_record(image) for image in result.created]


@router.post("/{image_id}/ai-metadata", response_model=AIMetadataOut, response_model_exclude_none=True)
async def generate_ai_metadata(
    image_id: int,
    payload: Optional[AIMetadataRequest] = None,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    store: ArtifactStore = Depends(get_artifact_store),
    suggester: Optional[MetadataSuggester] = Depends(get_metadata_suggester)
):
    """Ask the configured AI service for a title, description and tags."""
    if suggester is None:
        raise ExternalServiceUnavailable("OpenAI API key not configured on server.")

    image = await get_owned_image(ImageRepository(db), image_id, user)

    try:
        data = await store.read_original(image.filename)
    except FileNotFoundError as e:
        raise InternalError("Error generating AI metadata", error=str(e))

    suggestion = await suggester.suggest(data, image.mime_type, payload.lang if payload else None)
    return AIMetadataOut(**suggestion)


@router.patch("/{image_id}/details", response_model=ImageOut)
async def update_image_details(
    image_id: int,
    payload: Optional[DetailsUpdate] = None,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Replace title, description, tags and share password.

    Fields missing from the body are cleared, not kept.
    """
    payload = payload or DetailsUpdate()
    repo = ImageRepository(db)
    image = await get_owned_image(repo, image_id, user)

    image.title = payload.title
    image.description = payload.description
    image.tags = [tag.strip() for tag in (payload.tags or []) if tag.strip()]
    image.share_password_hash = hash_share_password(payload.share_password)

    await repo.update(image)
    return ImageOut.from_record(image)


@router.patch("/{image_id}/bookmark", response_model=ImageOut)
async def update_toggle_bookmark(
    image_id: int,
    payload: Optional[BookmarkUpdate] = None,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Set the bookmark flag, or toggle it when no value is given."""
    repo = ImageRepository(db)
    image = await get_owned_image(repo, image_id, user)

    if payload is not None and payload.bookmarked is not None:
        image.bookmarked = payload.bookmarked
    else:
        image.bookmarked = not image.bookmarked

    await repo.update(image)
    return ImageOut.from_record(image)


@router.delete("/{image_id}", response_model=MessageOut)
async def delete_image(
    image_id: int,
    background_tasks: BackgroundTasks,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    store: ArtifactStore = Depends(get_artifact_store)
):
    """Delete the record; its artifacts are removed after the response."""
    repo = ImageRepository(db)
    image = await get_owned_image(repo, image_id, user)
    filename = image.filename

    await repo.delete(image)
    background_tasks.add_task(store.remove, filename)

    return MessageOut(message="Image deleted")
