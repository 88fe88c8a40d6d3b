"""
Metadata extraction cho image buffers
Detect format, dimensions, color mode và transparency
"""

import logging
from io import BytesIO
from typing import Any, Dict

from PIL import Image

from .config import ImageApiConfig, get_config
from .errors import UnsupportedFormatError
from .models import ImageMetadata
from .operations import SOURCE_FORMATS

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "avif": "image/avif",
    "tiff": "image/tiff",
}


def content_type(format_name: str) -> str:
    """MIME type cho một format name"""
    return CONTENT_TYPES.get(format_name.lower(), f"image/{format_name.lower()}")


class MetadataExtractor:
    """Extract metadata từ encoded buffers"""

    def __init__(self, config: ImageApiConfig = None):
        self.config = config or get_config()

    def detect_format(self, buffer: bytes) -> str:
        """
        Detect format mà không decode pixel data

        Raises:
            UnsupportedFormatError: If Pillow cannot identify the buffer
        """
        try:
            with Image.open(BytesIO(buffer)) as image:
                pil_format = image.format or ""
        except Exception as e:
            raise UnsupportedFormatError(f"Unsupported image format: {e}")

        image_format = SOURCE_FORMATS.get(pil_format)
        return image_format.value if image_format else pil_format.lower()

    def describe(self, buffer: bytes) -> ImageMetadata:
        """
        Tạo ImageMetadata cho buffer

        Args:
            buffer: Encoded image bytes

        Returns:
            ImageMetadata object

        Raises:
            UnsupportedFormatError: If the buffer is empty, unreadable or in a format outside supported_formats
        """
        if not buffer:
            raise UnsupportedFormatError("Image file is empty")

        try:
            with Image.open(BytesIO(buffer)) as image:
                width, height = image.size
                mode = image.mode
                pil_format = image.format or ""
                has_transparency = self._check_transparency(image)
        except Exception as e:
            raise UnsupportedFormatError(f"Unsupported image format: {e}")

        image_format = SOURCE_FORMATS.get(pil_format)
        format_name = image_format.value if image_format else pil_format.lower()
        if not self.config.is_supported_format(format_name):
            raise UnsupportedFormatError(
                f"Unsupported image format: {format_name or 'unknown'}. "
                f"Supported: {', '.join(self.config.supported_formats)}"
            )

        metadata = ImageMetadata(
            width=width,
            height=height,
            mode=mode,
            format=format_name,
            file_size=len(buffer),
            has_transparency=has_transparency,
        )
        logger.debug(f"Described image: {width}x{height}, {format_name}, {len(buffer)} bytes")
        return metadata

    def _check_transparency(self, image: Image.Image) -> bool:
        """Check if image has transparency"""
        if image.mode in ('RGBA', 'LA'):
            return True
        return 'transparency' in image.info

    def summary(self, metadata: ImageMetadata) -> Dict[str, Any]:
        """Flat dict cho CLI tables và response headers"""
        return {
            "dimensions": f"{metadata.width}x{metadata.height}",
            "format": metadata.format,
            "mode": metadata.mode,
            "file_size": metadata.file_size,
            "has_transparency": metadata.has_transparency,
            "aspect_ratio": round(metadata.width / metadata.height, 3),
        }
