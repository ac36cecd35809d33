"""
Video Source
============

Frame-accurate raster access to a source video.

This module provides the VideoSource protocol and the OpenCV-backed
implementation used in production. Tests substitute an in-memory source
implementing the same protocol.

Design Rules:
    - Seeking is frame-accurate (zero tolerance): a timestamp maps to
      exactly one source frame index, round(timestamp * fps)
    - Frames are returned upright (preferred transform applied)
    - A source with no readable video track fails at construction with
      NoVideoTrackError, before any sampling starts
"""

import logging
from fractions import Fraction
from pathlib import Path
from typing import Optional, Protocol, Tuple, Union

import cv2
import numpy as np

from temporal_composite.errors import FrameExtractionError, NoVideoTrackError


logger = logging.getLogger(__name__)


class VideoSource(Protocol):
    """
    Protocol for video sources.

    Attributes:
        uri: Identifier of the asset
        duration: Duration of the primary video track in seconds
        nominal_frame_rate: Declared frames per second
        natural_size: Encoded (width, height)
        rotation: Preferred transform as clockwise degrees (0/90/180/270)
    """

    uri: str

    @property
    def duration(self) -> float:
        ...

    @property
    def nominal_frame_rate(self) -> float:
        ...

    @property
    def natural_size(self) -> Tuple[int, int]:
        ...

    @property
    def rotation(self) -> int:
        ...

    def frame_at(self, timestamp: Fraction) -> np.ndarray:
        """
        Extract the frame displayed at ``timestamp``.

        Args:
            timestamp: Presentation time in seconds

        Returns:
            BGR image (H, W, 3), dtype=uint8

        Raises:
            FrameExtractionError: If the frame cannot be seeked or decoded
        """
        ...

    def close(self) -> None:
        ...


def display_size(source: VideoSource) -> Tuple[int, int]:
    """Natural size with the preferred transform applied."""
    width, height = source.natural_size
    if source.rotation % 180 == 90:
        return height, width
    return width, height


def frame_rate_fraction(frame_rate: float) -> Fraction:
    """Rational frame rate (e.g. 29.97 -> 30000/1001, 25.0 -> 25)."""
    if frame_rate <= 0:
        raise ValueError(f"frame_rate must be positive, got {frame_rate}")
    # NTSC family: 23.976, 29.97, 59.94 ...
    ntsc_base = round(frame_rate * 1.001)
    if abs(frame_rate - round(frame_rate)) > 1e-3 and abs(frame_rate * 1.001 - ntsc_base) < 1e-3:
        return Fraction(ntsc_base * 1000, 1001)
    return Fraction(frame_rate).limit_denominator(1001)


class OpenCVVideoSource:
    """
    cv2.VideoCapture-backed video source.

    Sequential requests (the common case with stride 1) are served by
    plain reads; any other request seeks to the exact frame index first.

    Example:
        with OpenCVVideoSource("match.mov") as source:
            frame = source.frame_at(Fraction(1, 2))
    """

    def __init__(self, path: Union[str, Path]) -> None:
        """
        Open the video.

        Args:
            path: Path to the video file

        Raises:
            NoVideoTrackError: If the file has no readable video track
        """
        self.uri = str(path)
        self._cap = cv2.VideoCapture(self.uri)
        if not self._cap.isOpened():
            raise NoVideoTrackError(f"Could not open video: {self.uri}")

        self._fps = float(self._cap.get(cv2.CAP_PROP_FPS) or 0.0)
        self._frame_count = int(self._cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        self._rotation = int(self._cap.get(cv2.CAP_PROP_ORIENTATION_META) or 0) % 360

        if self._fps <= 0 or width <= 0 or height <= 0:
            self._cap.release()
            raise NoVideoTrackError(
                f"No usable video track in {self.uri}: "
                f"fps={self._fps}, size={width}x{height}"
            )

        self._natural_size = (width, height)
        self._next_index: Optional[int] = 0

        logger.info(
            f"OpenCVVideoSource opened: {self.uri}, "
            f"{width}x{height} @ {self._fps:.3f}fps, "
            f"{self._frame_count} frames, rotation={self._rotation}"
        )

    @property
    def duration(self) -> float:
        return self._frame_count / self._fps

    @property
    def nominal_frame_rate(self) -> float:
        return self._fps

    @property
    def natural_size(self) -> Tuple[int, int]:
        return self._natural_size

    @property
    def rotation(self) -> int:
        return self._rotation

    def frame_at(self, timestamp: Fraction) -> np.ndarray:
        index = round(Fraction(timestamp) * frame_rate_fraction(self._fps))
        if index < 0 or (self._frame_count and index >= self._frame_count):
            raise FrameExtractionError(
                f"Timestamp {float(timestamp):.3f}s (frame {index}) outside {self.uri}"
            )

        if index != self._next_index:
            if not self._cap.set(cv2.CAP_PROP_POS_FRAMES, index):
                self._next_index = None
                raise FrameExtractionError(f"Seek to frame {index} failed in {self.uri}")

        ok, frame = self._cap.read()
        if not ok or frame is None:
            self._next_index = None
            raise FrameExtractionError(f"Failed to decode frame {index} of {self.uri}")

        self._next_index = index + 1
        return frame

    def close(self) -> None:
        self._cap.release()

    def __enter__(self) -> "OpenCVVideoSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
