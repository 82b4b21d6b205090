"""Public, password-gated access to an image by its fingerprint."""
import logging
from typing import Optional

from panorama_api.auth import hash_password, verify_password
from panorama_api.errors import NotFound
from panorama_api.models import Image
from panorama_api.repository import ImageRepository
from panorama_api.schemas import ShareAccessOut

logger = logging.getLogger(__name__)


def hash_share_password(password: Optional[str]) -> Optional[str]:
    """Hash a share password; empty or missing means no password."""
    if not password:
        return None
    return hash_password(password)


def share_password_matches(image: Image, supplied: Optional[str]) -> bool:
    # Images without a password only accept an empty one
    if image.share_password_hash is None:
        return not supplied
    if not supplied:
        return False
    return verify_password(supplied, image.share_password_hash)


async def access_shared_image(
    repo: ImageRepository,
    image_hash: str,
    supplied_password: Optional[str],
    base_url: str,
) -> ShareAccessOut:
    """
    Resolve a shared image and count the view.

    A wrong password is reported exactly like a missing image and does not
    count as a view.
    """
    image = await repo.find_by_hash(image_hash)
    if image is None:
        raise NotFound("Image not found")

    if not share_password_matches(image, supplied_password):
        logger.info("Share password mismatch for image %s", image.id)
        raise NotFound("Password not match")

    await repo.increment_view_count(image)

    return ShareAccessOut(
        id=image.id,
        hash=image.hash,
        image_url=f"{base_url.rstrip('/')}{image.original_url}",
    )
