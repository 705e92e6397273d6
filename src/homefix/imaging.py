"""Image normalization before a photo is sent to the vision model.

Large phone photos are shrunk to fit 1920x1080 and re-encoded as progressive
JPEG so the request stays small.
"""

import os
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image
from pydantic import BaseModel

from .log import get_logger

logger = get_logger("imaging")

MAX_WIDTH = 1920
MAX_HEIGHT = 1080
JPEG_QUALITY = 85


class ImageProcessingResult(BaseModel):
    processed_path: str
    original_size: int
    processed_size: int
    width: int
    height: int


def fit_within(width: int, height: int, max_width: int = MAX_WIDTH, max_height: int = MAX_HEIGHT) -> Tuple[int, int]:
    """Target size that fits the bounds with the same aspect ratio. Never enlarges."""
    if width <= max_width and height <= max_height:
        return width, height

    aspect = width / height
    if aspect > max_width / max_height:
        return max_width, max(1, round(max_width / aspect))
    return max(1, round(max_height * aspect)), max_height


def process_image_for_vision(path: str, output_dir: Optional[str] = None) -> ImageProcessingResult:
    """
    Write `<stem>_processed.jpg` next to the original (or into output_dir).

    Raises OSError / PIL.UnidentifiedImageError when the file is not a readable
    image; the caller decides whether to fall back to the original.
    """
    source = Path(path)
    target = Path(output_dir or source.parent) / f"{source.stem}_processed.jpg"
    original_size = source.stat().st_size

    with Image.open(source) as img:
        width, height = fit_within(*img.size)
        out = img if img.size == (width, height) else img.resize((width, height), Image.LANCZOS)
        if out.mode != "RGB":
            out = out.convert("RGB")
        out.save(target, "JPEG", quality=JPEG_QUALITY, progressive=True, optimize=True)

    processed_size = target.stat().st_size
    reduction = round((1 - processed_size / original_size) * 100) if original_size else 0
    logger.info(f"Image processed: {original_size} bytes -> {processed_size} bytes ({reduction}% reduction)")

    return ImageProcessingResult(
        processed_path=str(target),
        original_size=original_size,
        processed_size=processed_size,
        width=width,
        height=height,
    )


def cleanup_processed_image(path: str) -> None:
    try:
        os.remove(path)
        logger.info(f"Cleaned up processed image: {path}")
    except OSError as e:
        logger.warning(f"Failed to clean up processed image {path}: {e}")
