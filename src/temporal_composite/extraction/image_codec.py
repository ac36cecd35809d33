"""
Image Codec
===========

Encoding, decoding and resizing helpers for frame rasters.

Design Rules:
    - This is the ONLY place in the codebase that calls cv2.imencode/imdecode
    - Validates shape and dtype
    - Fails fast with ImageCodecError on corrupt or unsupported input
    - PNG is the lossless dedup key; JPEG is the on-disk storage format
"""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from temporal_composite.errors import ImageCodecError


logger = logging.getLogger(__name__)


def _validate_raster(image: np.ndarray) -> None:
    if not isinstance(image, np.ndarray):
        raise ImageCodecError(f"Expected numpy array, got {type(image).__name__}")
    if image.ndim not in (2, 3) or (image.ndim == 3 and image.shape[2] not in (1, 3, 4)):
        raise ImageCodecError(f"Invalid image shape: {image.shape}")
    if image.dtype != np.uint8:
        raise ImageCodecError(f"Invalid dtype: {image.dtype}")
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise ImageCodecError(f"Empty image: {image.shape}")


def encode_png(image: np.ndarray) -> bytes:
    """
    Losslessly encode an image to PNG bytes.

    Two frames are duplicates exactly when their PNG encodings are equal.

    Args:
        image: uint8 image (H, W) or (H, W, C)

    Returns:
        PNG bytes

    Raises:
        ImageCodecError: If encoding fails
    """
    _validate_raster(image)
    ok, encoded = cv2.imencode(".png", image)
    if not ok:
        raise ImageCodecError("cv2.imencode returned failure for PNG")
    return encoded.tobytes()


def encode_jpeg(image: np.ndarray, quality: int = 80) -> bytes:
    """
    Encode an image to JPEG bytes.

    Args:
        image: uint8 image (H, W) or (H, W, 3)
        quality: JPEG quality in [1, 100]

    Returns:
        JPEG bytes

    Raises:
        ImageCodecError: If encoding fails
    """
    _validate_raster(image)
    if not 1 <= quality <= 100:
        raise ImageCodecError(f"JPEG quality out of range: {quality}")
    ok, encoded = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        raise ImageCodecError("cv2.imencode returned failure for JPEG")
    return encoded.tobytes()


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode encoded image bytes to a BGR array.

    Raises:
        ImageCodecError: If decoding fails
    """
    nparr = np.frombuffer(data, np.uint8)
    bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if bgr is None:
        raise ImageCodecError("cv2.imdecode returned None")
    return bgr


def thumbnail_size(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """
    Aspect-preserving size whose longest side equals ``max_dimension``.

    Returns:
        (width, height), each at least 1
    """
    if width <= 0 or height <= 0:
        raise ImageCodecError(f"Invalid source size: {width}x{height}")
    if max_dimension < 1:
        raise ImageCodecError(f"Invalid max dimension: {max_dimension}")

    aspect = width / height
    if width > height:
        new_w, new_h = max_dimension, max_dimension / aspect
    else:
        new_w, new_h = max_dimension * aspect, max_dimension
    return max(1, int(round(new_w))), max(1, int(round(new_h)))


def make_thumbnail(image: np.ndarray, max_dimension: int = 128) -> np.ndarray:
    """
    Resize an image into a ``max_dimension`` bounding box.

    Args:
        image: uint8 image
        max_dimension: Longest side of the thumbnail in pixels

    Returns:
        Resized image

    Raises:
        ImageCodecError: If resizing fails
    """
    _validate_raster(image)
    height, width = image.shape[:2]
    size = thumbnail_size(width, height, max_dimension)
    try:
        return cv2.resize(image, size, interpolation=cv2.INTER_AREA)
    except cv2.error as e:
        raise ImageCodecError(f"Thumbnail resize failed: {e}") from e


def load_image(path: Union[str, Path]) -> Optional[np.ndarray]:
    """
    Read an image file from disk as BGR.

    Returns:
        BGR image, or None if the file is missing or unreadable
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"File does not exist at path: {path}")
        return None
    image = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if image is None:
        logger.warning(f"Failed to decode image from file at path: {path}")
    return image
