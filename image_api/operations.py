"""
Image operations backed by Pillow
Mỗi operation nhận một encoded buffer, trả về buffer mới; không mutate input
"""

import logging
from io import BytesIO
from typing import Dict, Optional, Tuple

from PIL import Image, ImageFilter, ImageOps

from .config import ImageApiConfig, get_config
from .errors import ProcessingError, ValidationError
from .models import (
    CropParams,
    FilterName,
    FilterParams,
    FormatParams,
    ImageFormat,
    OperationParameters,
    ResizeFit,
    ResizeParams,
    RotateParams,
)

logger = logging.getLogger(__name__)

# Pillow format name -> output format
SOURCE_FORMATS: Dict[str, ImageFormat] = {
    "JPEG": ImageFormat.JPEG,
    "MPO": ImageFormat.JPEG,
    "PNG": ImageFormat.PNG,
    "WEBP": ImageFormat.WEBP,
    "AVIF": ImageFormat.AVIF,
    "TIFF": ImageFormat.TIFF,
}

PIL_SAVE_FORMATS: Dict[ImageFormat, str] = {
    ImageFormat.JPEG: "JPEG",
    ImageFormat.PNG: "PNG",
    ImageFormat.WEBP: "WEBP",
    ImageFormat.AVIF: "AVIF",
    ImageFormat.TIFF: "TIFF",
}

# Clockwise angle -> Pillow transpose (Pillow rotates counter-clockwise)
ROTATIONS = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}

WORKING_MODES = ("RGB", "RGBA", "L", "LA")


def decode_image(buffer: bytes) -> Image.Image:
    """
    Decode buffer và normalize color mode

    Raises:
        ProcessingError: If Pillow cannot decode the buffer
    """
    try:
        image = Image.open(BytesIO(buffer))
        image.load()
    except Image.DecompressionBombError as e:
        raise ProcessingError(f"Image too large to process: {e}")
    except Exception as e:
        raise ProcessingError(f"Failed to decode image: {e}")

    source_format = image.format
    if image.mode not in WORKING_MODES:
        has_alpha = "A" in image.getbands() or "transparency" in image.info
        image = image.convert("RGBA" if has_alpha else "RGB")
    # convert() drops .format; keep it for output format detection
    image.format = source_format
    return image


def source_format_of(image: Image.Image) -> ImageFormat:
    return SOURCE_FORMATS.get(image.format or "", ImageFormat.PNG)


def flatten_alpha(image: Image.Image) -> Image.Image:
    """Composite transparency onto a white background"""
    if image.mode not in ("RGBA", "LA"):
        return image if image.mode in ("RGB", "L") else image.convert("RGB")
    rgba = image.convert("RGBA")
    background = Image.new("RGB", rgba.size, (255, 255, 255))
    background.paste(rgba, mask=rgba.split()[-1])
    return background


def encode_image(image: Image.Image, output_format: ImageFormat, config: ImageApiConfig) -> bytes:
    """
    Encode image to bytes

    PNG and TIFF are lossless; JPEG, WebP and AVIF use the configured quality.

    Raises:
        ProcessingError: If the encoder fails or is unavailable
    """
    save_kwargs = {}
    if output_format == ImageFormat.JPEG:
        image = flatten_alpha(image)
        save_kwargs["quality"] = config.jpeg_quality
    elif output_format == ImageFormat.WEBP:
        save_kwargs["quality"] = config.webp_quality
    elif output_format == ImageFormat.AVIF:
        save_kwargs["quality"] = config.avif_quality

    out = BytesIO()
    try:
        image.save(out, PIL_SAVE_FORMATS[output_format], **save_kwargs)
    except Exception as e:
        raise ProcessingError(f"Failed to encode {output_format.value}: {e}")
    return out.getvalue()


class ImageOperation:
    """
    Base cho operations: decode -> transform -> encode

    Subclasses set params_type and implement transform().
    """

    name = ""
    params_type: type = None

    def __init__(self, config: ImageApiConfig = None):
        self.config = config or get_config()

    def output_format(self, image: Image.Image, params: OperationParameters) -> ImageFormat:
        return source_format_of(image)

    def transform(self, image: Image.Image, params: OperationParameters) -> Image.Image:
        raise NotImplementedError

    def execute(self, buffer: bytes, params: OperationParameters) -> bytes:
        """
        Apply operation lên buffer

        Args:
            buffer: Encoded input image
            params: Validated parameters matching params_type

        Returns:
            New encoded buffer

        Raises:
            ProcessingError: If decoding, transforming or encoding fails
        """
        if not isinstance(params, self.params_type):
            raise ValidationError(
                f"{self.name} expects {self.params_type.__name__}, got {type(params).__name__}",
                field="params",
            )

        image = decode_image(buffer)
        output_format = self.output_format(image, params)
        try:
            result = self.transform(image, params)
        except ProcessingError:
            raise
        except Exception as e:
            raise ProcessingError(f"{self.name} failed: {e}")

        return encode_image(result, output_format, self.config)


class ResizeOperation(ImageOperation):
    """Resize theo fit mode; thiếu height thì giữ aspect ratio theo width"""

    name = "resize"
    params_type = ResizeParams

    @property
    def default_fit(self) -> ResizeFit:
        return ResizeFit(self.config.default_fit)

    def output_size(self, image: Image.Image, params: ResizeParams) -> Tuple[int, int]:
        """Kích thước output, tính trước khi allocate pixel nào"""
        if params.height is None:
            return params.width, max(1, round(image.height * params.width / image.width))

        fit = params.fit or self.default_fit
        if fit in (ResizeFit.INSIDE, ResizeFit.OUTSIDE):
            pick = min if fit == ResizeFit.INSIDE else max
            ratio = pick(params.width / image.width, params.height / image.height)
            return max(1, round(image.width * ratio)), max(1, round(image.height * ratio))
        return params.width, params.height

    def transform(self, image: Image.Image, params: ResizeParams) -> Image.Image:
        size = self.output_size(image, params)
        if size[0] * size[1] > self.config.max_output_pixels:
            raise ProcessingError(
                f"Resize output {size[0]}x{size[1]} exceeds {self.config.max_output_pixels} pixels"
            )

        fit = params.fit or self.default_fit
        if params.height is None or fit in (ResizeFit.FILL, ResizeFit.INSIDE, ResizeFit.OUTSIDE):
            return image.resize(size, Image.Resampling.LANCZOS)
        if fit == ResizeFit.COVER:
            return ImageOps.fit(image, size, Image.Resampling.LANCZOS)
        return ImageOps.pad(image, size, Image.Resampling.LANCZOS)


class CropOperation(ImageOperation):
    """Extract rectangle (left, top, width, height)"""

    name = "crop"
    params_type = CropParams

    def transform(self, image: Image.Image, params: CropParams) -> Image.Image:
        right = params.left + params.width
        bottom = params.top + params.height
        if right > image.width or bottom > image.height:
            raise ProcessingError(
                f"Crop area {params.width}x{params.height}+{params.left}+{params.top} "
                f"exceeds image bounds {image.width}x{image.height}"
            )
        return image.crop((params.left, params.top, right, bottom))


class FormatOperation(ImageOperation):
    """Re-encode sang target format"""

    name = "format"
    params_type = FormatParams

    def output_format(self, image: Image.Image, params: FormatParams) -> ImageFormat:
        return params.format

    def transform(self, image: Image.Image, params: FormatParams) -> Image.Image:
        return image


class RotateOperation(ImageOperation):
    """Rotate clockwise 90/180/270"""

    name = "rotate"
    params_type = RotateParams

    def transform(self, image: Image.Image, params: RotateParams) -> Image.Image:
        return image.transpose(ROTATIONS[params.angle])


class FilterOperation(ImageOperation):
    """grayscale / blur / sharpen; sigma điều chỉnh strength cho blur và sharpen"""

    name = "filter"
    params_type = FilterParams

    def transform(self, image: Image.Image, params: FilterParams) -> Image.Image:
        if params.filter == FilterName.GRAYSCALE:
            return image.convert("LA" if image.mode in ("RGBA", "LA") else "L")

        if params.filter == FilterName.BLUR:
            kernel = ImageFilter.GaussianBlur(radius=params.sigma) if params.sigma else ImageFilter.BoxBlur(1)
        else:
            kernel = ImageFilter.UnsharpMask(radius=params.sigma) if params.sigma else ImageFilter.SHARPEN

        return image.filter(kernel)


def default_operations(config: Optional[ImageApiConfig] = None) -> Dict[str, ImageOperation]:
    """Bảng năm operations chuẩn, keyed theo operation name"""
    config = config or get_config()
    operations = [
        ResizeOperation(config),
        CropOperation(config),
        FormatOperation(config),
        RotateOperation(config),
        FilterOperation(config),
    ]
    return {operation.name: operation for operation in operations}
