"""
Image dimension lookup for images opened in the editor.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from PIL import Image, UnidentifiedImageError

from studio.config import settings
from studio.models.state import ImageSize

logger = logging.getLogger(__name__)


class ImageMetadataService:
    """Reads image headers to seed editor dimensions."""

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = base_dir

    def get_dimensions(self, path: Union[str, Path]) -> Optional[ImageSize]:
        """
        Return the pixel dimensions of an image, or None if it cannot be read.

        Only the header is parsed; pixel data is never decoded.
        """
        image_path = Path(path)
        if self.base_dir is not None and not image_path.is_absolute():
            image_path = self.base_dir / image_path

        try:
            with Image.open(image_path) as image:
                width, height = image.size
        except (OSError, UnidentifiedImageError) as e:
            logger.warning(f"Could not read dimensions of {image_path}: {e}")
            return None

        logger.debug(f"{image_path}: {width}x{height}")
        return ImageSize(width=width, height=height)


# Global service instance
metadata_service = ImageMetadataService(settings.images_dir)
