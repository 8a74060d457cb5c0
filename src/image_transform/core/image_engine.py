"""Pillow implementation of the image engine."""

import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple, Union

from PIL import Image, ImageColor, ImageOps

from .exceptions import ImageProcessingError, with_error_handling
from .geometry import resize_dimensions
from .logging_config import get_logger
from .models import (
    ImageMetadata,
    OutputInfo,
    ResizeOptions,
    RgbaColor,
    RotateOptions,
)

# Export format name -> Pillow format identifier.
PIL_FORMATS: Dict[str, str] = {
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "avif": "AVIF",
}

KERNELS: Dict[str, Image.Resampling] = {
    "nearest": Image.Resampling.NEAREST,
    "cubic": Image.Resampling.BICUBIC,
    "mitchell": Image.Resampling.BICUBIC,
    "lanczos2": Image.Resampling.LANCZOS,
    "lanczos3": Image.Resampling.LANCZOS,
}

Color = Union[int, Tuple[int, ...]]


@dataclass(frozen=True)
class ImageHandle:
    """An image plus the metadata and pending encoding that travel with it."""

    image: Image.Image
    source_path: Optional[str] = None
    source_format: Optional[str] = None
    exif: Optional[bytes] = None
    icc_profile: Optional[bytes] = None
    keep_meta: bool = False
    encode_format: Optional[str] = None
    encode_options: Dict[str, Any] = field(default_factory=dict)

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size


def _normalize_mode(image: Image.Image) -> Image.Image:
    if image.mode in ("RGB", "RGBA", "L", "LA"):
        return image
    has_alpha = image.mode in ("PA", "RGBa", "La") or "transparency" in image.info
    return image.convert("RGBA" if has_alpha else "RGB")


def _rgba(background: Optional[Union[str, RgbaColor]]) -> Tuple[int, int, int, int]:
    if background is None:
        return (0, 0, 0, 255)
    if isinstance(background, str):
        color = ImageColor.getrgb(background)
        return color if len(color) == 4 else (*color, 255)  # type: ignore[return-value]
    alpha = 1.0 if background.alpha is None else background.alpha
    return (background.r or 0, background.g or 0, background.b or 0, round(alpha * 255))


def fill_color(background: Optional[Union[str, RgbaColor]], mode: str) -> Color:
    """Express a background color in the channel layout of ``mode``."""
    r, g, b, a = _rgba(background)
    if mode in ("L", "LA"):
        luminance = round(0.299 * r + 0.587 * g + 0.114 * b)
        return luminance if mode == "L" else (luminance, a)
    if mode == "RGBA":
        return (r, g, b, a)
    return (r, g, b)


def centering(position: Optional[Union[str, int]]) -> Tuple[float, float]:
    """Map a gravity name (``top``, ``left bottom``, ``northeast``...) to Pillow centering."""
    if not isinstance(position, str):
        return (0.5, 0.5)
    name = position.lower()
    x = 0.5
    y = 0.5
    if "left" in name or "west" in name:
        x = 0.0
    elif "right" in name or "east" in name:
        x = 1.0
    if "top" in name or "north" in name:
        y = 0.0
    elif "bottom" in name or "south" in name:
        y = 1.0
    return (x, y)


class PillowImageEngine:
    """Image engine backed by Pillow.

    Handles are immutable values; each operation returns a new handle and
    never modifies the image of the handle it was given.
    """

    def __init__(self) -> None:
        self._logger = get_logger("image-transform.engine")

    @with_error_handling
    def open(self, path: str) -> ImageHandle:
        with Image.open(path) as raw:
            raw.load()
            source_format = raw.format
            exif = raw.info.get("exif")
            icc_profile = raw.info.get("icc_profile")
            image = _normalize_mode(raw)
            if image is raw:
                image = raw.copy()
        return ImageHandle(
            image=image,
            source_path=path,
            source_format=source_format,
            exif=exif,
            icc_profile=icc_profile,
        )

    @with_error_handling
    def metadata(self, handle: ImageHandle) -> ImageMetadata:
        size_bytes = 0
        if handle.source_path and os.path.exists(handle.source_path):
            size_bytes = os.path.getsize(handle.source_path)
        width, height = handle.size
        return ImageMetadata(
            width=width,
            height=height,
            format=(handle.source_format or "").lower() or None,
            size_bytes=size_bytes,
        )

    @with_error_handling
    def clone(self, handle: ImageHandle) -> ImageHandle:
        return replace(
            handle,
            image=handle.image.copy(),
            encode_options=dict(handle.encode_options),
        )

    def keep_metadata(self, handle: ImageHandle, keep: bool = True) -> ImageHandle:
        return replace(handle, keep_meta=keep)

    @with_error_handling
    def resize(self, handle: ImageHandle, options: ResizeOptions) -> ImageHandle:
        width, height = handle.size
        size = resize_dimensions(width, height, options)
        if size is None or size == (width, height):
            return self.clone(handle)

        method = KERNELS.get(options.kernel or "lanczos3", Image.Resampling.LANCZOS)
        fit = options.fit or "cover"
        both = bool(options.width and options.height)
        image = handle.image

        if both and fit == "cover":
            resized = ImageOps.fit(image, size, method=method, centering=centering(options.position))
        elif both and fit == "contain":
            resized = ImageOps.pad(
                image,
                size,
                method=method,
                color=fill_color(options.background, image.mode),
                centering=centering(options.position),
            )
        else:
            resized = image.resize(size, method)
        return replace(handle, image=resized)

    @with_error_handling
    def rotate(self, handle: ImageHandle, options: RotateOptions) -> ImageHandle:
        image = handle.image
        angle = options.angle % 360
        # Pillow rotates counter-clockwise; angles here are clockwise.
        if angle == 0:
            rotated = image.copy()
        elif angle == 90:
            rotated = image.transpose(Image.Transpose.ROTATE_270)
        elif angle == 180:
            rotated = image.transpose(Image.Transpose.ROTATE_180)
        elif angle == 270:
            rotated = image.transpose(Image.Transpose.ROTATE_90)
        else:
            rotated = image.rotate(
                -angle,
                resample=Image.Resampling.BICUBIC,
                expand=True,
                fillcolor=fill_color(options.fill, image.mode),
            )
        return replace(handle, image=rotated)

    def encode(self, handle: ImageHandle, fmt: str, options: Dict[str, Any]) -> ImageHandle:
        if fmt not in PIL_FORMATS:
            raise ImageProcessingError(f"Unsupported export format: {fmt}")
        return replace(handle, encode_format=fmt, encode_options=dict(options))

    @with_error_handling
    def write_to_file(self, handle: ImageHandle, path: str) -> OutputInfo:
        fmt = handle.encode_format
        if fmt is None:
            raise ImageProcessingError("Handle has no output encoding, call encode() first")

        image, params = self._save_params(handle, fmt)
        image.save(path, format=PIL_FORMATS[fmt], **params)
        width, height = image.size
        return OutputInfo(width=width, height=height, size=os.path.getsize(path))

    def release(self, handle: Optional[ImageHandle]) -> None:
        if handle is not None:
            handle.image.close()

    def _save_params(self, handle: ImageHandle, fmt: str) -> Tuple[Image.Image, Dict[str, Any]]:
        options = dict(handle.encode_options)
        image = handle.image
        params: Dict[str, Any] = {}

        if handle.keep_meta:
            if handle.exif:
                params["exif"] = handle.exif
            params["icc_profile"] = handle.icc_profile
        else:
            params["exif"] = b""
            params["icc_profile"] = None

        quality = options.pop("quality", None)
        options.pop("force", None)

        if fmt == "jpeg":
            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            if quality is not None:
                params["quality"] = quality
            if options.pop("progressive", None):
                params["progressive"] = True
            optimise = options.pop("optimise_coding", None)
            optimize = options.pop("optimize_coding", None)
            if optimise or optimize:
                params["optimize"] = True
            subsampling = options.pop("chroma_subsampling", None)
            if subsampling:
                params["subsampling"] = subsampling
        elif fmt == "png":
            level = options.pop("compression_level", None)
            if level is not None:
                params["compress_level"] = level
            colors = options.pop("colors", None)
            dither = options.pop("dither", None)
            if options.pop("palette", None) or colors:
                image = image.quantize(
                    colors=colors or 256,
                    dither=Image.Dither.FLOYDSTEINBERG if dither else Image.Dither.NONE,
                )
        elif fmt == "webp":
            if quality is not None:
                params["quality"] = quality
            for key, target in (
                ("lossless", "lossless"),
                ("alpha_quality", "alpha_quality"),
                ("effort", "method"),
                ("min_size", "minimize_size"),
                ("mixed", "allow_mixed"),
                ("loop", "loop"),
                ("delay", "duration"),
            ):
                value = options.pop(key, None)
                if value is not None:
                    params[target] = value
        elif fmt == "avif":
            if options.pop("lossless", None):
                params["quality"] = 100
                params["subsampling"] = "4:4:4"
            elif quality is not None:
                params["quality"] = quality
            effort = options.pop("effort", None)
            if effort is not None:
                params["speed"] = max(0, min(10, 10 - effort))
            subsampling = options.pop("chroma_subsampling", None)
            if subsampling and "subsampling" not in params:
                params["subsampling"] = subsampling

        if options:
            self._logger.debug(f"Ignoring {fmt} options Pillow does not support: {sorted(options)}")
        return image, params
