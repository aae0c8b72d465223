"""
Image Normalizer
Downsamples and re-encodes menu photos before they are sent for extraction.

Each photo is:
- rotated upright using its EXIF orientation,
- resized so the longer edge is at most IMAGE_MAX_DIMENSION (aspect kept,
  never upscaled),
- re-encoded as JPEG at IMAGE_JPEG_QUALITY,
- returned as a bare base64 string (no data-URL header).
"""
from __future__ import annotations

import asyncio
import base64
import io
import os
from typing import List, Sequence, Union

from PIL import Image, ImageOps, UnidentifiedImageError

import config
from menu_pipeline.errors import EncodingError
from utils.logger import get_logger

RawImage = Union[bytes, bytearray, str, os.PathLike]

MIME_TYPE = 'image/jpeg'


class ImageNormalizer:
    """Bounded-resolution JPEG re-encoder for menu photos"""

    def __init__(self, max_dimension: int = None, quality: int = None, max_images: int = None):
        self.max_dimension = max_dimension or config.IMAGE_MAX_DIMENSION
        self.quality = quality or config.IMAGE_JPEG_QUALITY
        self.max_images = max_images or config.MAX_IMAGES_PER_MENU
        self.logger = get_logger()

    def normalize(self, raw_image: RawImage) -> str:
        """
        Normalize a single image.

        Args:
            raw_image: Encoded image bytes or a path to an image file

        Returns:
            Base64 encoded JPEG payload

        Raises:
            EncodingError: if the image cannot be decoded or re-encoded
        """
        try:
            source = io.BytesIO(raw_image) if isinstance(raw_image, (bytes, bytearray)) else raw_image
            with Image.open(source) as image:
                image = ImageOps.exif_transpose(image)
                if image.mode != 'RGB':
                    image = image.convert('RGB')

                width, height = image.size
                longer = max(width, height)
                if longer > self.max_dimension:
                    scale = self.max_dimension / longer
                    new_size = (max(1, round(width * scale)), max(1, round(height * scale)))
                    image = image.resize(new_size, Image.LANCZOS)

                buffer = io.BytesIO()
                image.save(buffer, 'JPEG', quality=self.quality, optimize=True)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise EncodingError(f"Could not process image: {e}") from e

        return base64.b64encode(buffer.getvalue()).decode('ascii')

    async def normalize_batch(self, raw_images: Sequence[RawImage]) -> List[str]:
        """
        Normalize a batch of images concurrently, keeping input order.

        The batch is truncated to max_images first. Every image is attempted
        even if a sibling fails; if any image fails the whole batch is
        rejected so the user never sees a partial menu.

        Raises:
            EncodingError: if the batch is empty or any image failed
        """
        batch = list(raw_images)[:self.max_images]
        if not batch:
            raise EncodingError("No images were provided")

        if len(raw_images) > len(batch):
            self.logger.warning(
                f"Received {len(raw_images)} images, only the first {len(batch)} will be processed",
                component="Images"
            )

        results = await asyncio.gather(
            *(asyncio.to_thread(self.normalize, raw) for raw in batch),
            return_exceptions=True,
        )

        failed = [idx + 1 for idx, result in enumerate(results) if isinstance(result, BaseException)]
        if failed:
            for idx, result in enumerate(results, 1):
                if isinstance(result, BaseException):
                    self.logger.error(f"Image {idx} failed: {result}", component="Images")
            pages = ', '.join(str(n) for n in failed)
            raise EncodingError(f"Could not process image(s) {pages}. Please retake the photo(s).")

        self.logger.info(f"Normalized {len(results)} image(s)", component="Images")
        return list(results)
