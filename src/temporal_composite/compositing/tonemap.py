"""
Tone Mapper
===========

Global peak rescale applied after the ring compositor.

The compositor's light budget bounds the blend for inputs in [0, 1], but
real content can still exceed it. The tone mapper measures the actual peak:

    peak <= target_peak  ->  image returned unchanged (same array)
    peak >  target_peak  ->  colour channels scaled by target_peak / peak
                             via a diagonal colour matrix, alpha untouched,
                             then clipped at target_peak

The rescale is global, so relative contrast is not preserved exactly when
it triggers.
"""

import logging
from dataclasses import replace
from typing import Tuple

import cv2
import numpy as np

from temporal_composite.models.composite import CompositeFrame


logger = logging.getLogger(__name__)


def measure_peak(image: np.ndarray) -> float:
    """Maximum colour-channel value over the whole image (alpha ignored)."""
    if image.size == 0:
        return 0.0
    if image.ndim == 3 and image.shape[2] == 4:
        return float(image[..., :3].max())
    return float(image.max())


def color_scale_matrix(scale: float, channels: int) -> np.ndarray:
    """Diagonal matrix scaling the first three channels by ``scale``."""
    diagonal = [scale] * min(channels, 3) + [1.0] * max(channels - 3, 0)
    return np.diag(np.asarray(diagonal, dtype=np.float32))


class ToneMapper:
    """
    Peak-clamping tone mapper.

    Attributes:
        target_peak: Maximum allowed channel value

    Example:
        mapper = ToneMapper(target_peak=1.0)
        image, clamp_scale = mapper.apply(composite.pixels)
    """

    def __init__(self, target_peak: float = 1.0) -> None:
        if target_peak <= 0:
            raise ValueError("target_peak must be positive")
        self.target_peak = target_peak
        self._frames_clamped = 0
        self._frames_seen = 0

    def apply(self, image: np.ndarray) -> Tuple[np.ndarray, float]:
        """
        Rescale ``image`` if its peak exceeds the target.

        Args:
            image: float32 image (H, W), (H, W, 3) or (H, W, 4)

        Returns:
            (image, clamp_scale); clamp_scale is 1.0 on pass-through
        """
        self._frames_seen += 1
        peak = measure_peak(image)
        if peak <= self.target_peak:
            return image, 1.0

        clamp_scale = self.target_peak / peak
        self._frames_clamped += 1

        if image.ndim == 2 or image.shape[2] == 1:
            scaled = image.astype(np.float32) * np.float32(clamp_scale)
            color = scaled
        else:
            channels = image.shape[2]
            scaled = cv2.transform(image.astype(np.float32), color_scale_matrix(clamp_scale, channels))
            color = scaled[..., :3]

        np.minimum(color, np.float32(self.target_peak), out=color)

        logger.debug(f"Tone mapped: peak={peak:.4f}, clamp_scale={clamp_scale:.4f}")
        return scaled, clamp_scale

    def apply_frame(self, frame: CompositeFrame) -> CompositeFrame:
        """Tone-map a CompositeFrame, recording the applied clamp scale."""
        pixels, clamp_scale = self.apply(frame.pixels)
        if clamp_scale == 1.0:
            return frame
        return replace(frame, pixels=pixels, clamp_scale=clamp_scale)

    def metrics(self) -> dict:
        return {
            "frames_seen": self._frames_seen,
            "frames_clamped": self._frames_clamped,
            "target_peak": self.target_peak,
        }
