"""Image processing utilities: fingerprinting, dimension probing, thumbnail rendering."""
import hashlib
import time
from io import BytesIO
from PIL import Image, ImageOps, UnidentifiedImageError
from typing import Optional, Tuple, Union

from panorama_api.errors import InvalidImage


def compute_fingerprint(data: bytes, salt: Union[str, int, None] = None) -> str:
    """
    Compute the SHA256 fingerprint of uploaded bytes salted with the upload time.

    The salt makes identical bytes uploaded twice produce different
    fingerprints; uniqueness itself is enforced by the repository.

    Args:
        data: Raw file bytes
        salt: Salt appended after the data (default: nanosecond clock)

    Returns:
        64 character hex digest
    """
    if salt is None:
        salt = time.time_ns()
    digest = hashlib.sha256(data)
    digest.update(str(salt).encode("utf-8"))
    return digest.hexdigest()


def open_image_from_bytes(data: bytes) -> Image.Image:
    """
    Open PIL Image from bytes.

    Raises:
        InvalidImage: If image cannot be opened
    """
    try:
        image = Image.open(BytesIO(data))
        image.load()
        return image
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise InvalidImage("Invalid image data", error=str(e))


def extract_dimensions(data: bytes) -> Optional[Tuple[int, int]]:
    """Return (width, height), or None when the data is not a readable image."""
    try:
        with Image.open(BytesIO(data)) as image:
            return image.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError):
        return None


def resize(data: bytes, target_width: int, target_height: int, mode: str = "cover") -> bytes:
    """
    Render a preview that fills exactly target_width x target_height.

    "cover" scales and center-crops; "contain" keeps the whole image and
    letterboxes it. Output keeps the source format where Pillow can write it.
    """
    image = open_image_from_bytes(data)
    fmt = image.format or "PNG"
    image = ImageOps.exif_transpose(image)

    if mode == "cover":
        preview = ImageOps.fit(image, (target_width, target_height), Image.Resampling.LANCZOS)
    elif mode == "contain":
        preview = ImageOps.pad(image, (target_width, target_height), Image.Resampling.LANCZOS)
    else:
        raise ValueError(f"Unknown resize mode: {mode}")

    # JPEG cannot hold alpha or palette data
    if fmt.upper() in ("JPEG", "JPG") and preview.mode != "RGB":
        preview = preview.convert("RGB")

    output = BytesIO()
    save_kwargs = {"quality": 85, "optimize": True} if fmt.upper() in ("JPEG", "JPG") else {}
    try:
        preview.save(output, format=fmt, **save_kwargs)
    except (KeyError, OSError):
        # Pillow can read more formats than it can write
        output = BytesIO()
        preview.convert("RGBA").save(output, format="PNG")
    return output.getvalue()
