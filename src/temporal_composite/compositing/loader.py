"""
Frame Loader
============

Read-only ``position -> image`` access over persisted frames.

Frames are addressed by their position in the ordinal-ordered sequence
returned by the metadata store, so dedup gaps in ordinal indexes do not
leave holes inside a composite window.

Images are returned as float32 BGR in [0, 1], resized to the canvas when
their size differs from it. A bounded window cache keeps at most
``cache_size`` decoded images resident; with cache_size = 2*ring_count+1 a
sliding render reads each file once.
"""

import logging
from collections import OrderedDict
from typing import List, Optional, Tuple

import cv2
import numpy as np

from temporal_composite.errors import StorageError
from temporal_composite.extraction.image_codec import load_image
from temporal_composite.models.frame import PersistedFrame
from temporal_composite.storage import FrameMetadataStore, ProjectStorage


logger = logging.getLogger(__name__)


def to_float_image(image: np.ndarray) -> np.ndarray:
    """uint8 image -> float32 in [0, 1], always 3-channel BGR."""
    if image.ndim == 2:
        image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    elif image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image.astype(np.float32) / 255.0


class FrameLoader:
    """
    Position-addressed image loader for the compositor.

    Attributes:
        frames: Persisted frames ordered by ordinal index
        canvas_size: (width, height) every image is conformed to
    """

    def __init__(
        self,
        frames: List[PersistedFrame],
        storage: ProjectStorage,
        canvas_size: Optional[Tuple[int, int]] = None,
        cache_size: int = 17,
    ) -> None:
        """
        Initialize loader.

        Args:
            frames: Frames ordered by ordinal index
            storage: Storage used to resolve relative paths
            canvas_size: Output (width, height); None keeps native sizes
            cache_size: Maximum decoded images kept resident
        """
        if cache_size < 1:
            raise ValueError("cache_size must be >= 1")
        self.frames = list(frames)
        self.storage = storage
        self.canvas_size = canvas_size
        self.cache_size = cache_size
        self._cache: "OrderedDict[int, Optional[np.ndarray]]" = OrderedDict()
        self._loads = 0

    @classmethod
    def from_store(
        cls,
        store: FrameMetadataStore,
        storage: ProjectStorage,
        **kwargs,
    ) -> "FrameLoader":
        """Build a loader over every frame in ``store``."""
        return cls(store.frames(), storage, **kwargs)

    def __len__(self) -> int:
        return len(self.frames)

    def __call__(self, position: int) -> Optional[np.ndarray]:
        return self.load(position)

    def load(self, position: int) -> Optional[np.ndarray]:
        """
        Image at ``position``, or None when out of range or unreadable.
        """
        if position < 0 or position >= len(self.frames):
            return None

        if position in self._cache:
            self._cache.move_to_end(position)
            return self._cache[position]

        image = self._read(self.frames[position])
        self._cache[position] = image
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return image

    def load_native(self, position: int) -> Optional[np.ndarray]:
        """Raw uint8 image at ``position`` without canvas conforming or caching."""
        if position < 0 or position >= len(self.frames):
            return None
        frame = self.frames[position]
        try:
            return load_image(self.storage.resolve(frame.image_relative_path))
        except StorageError as e:
            logger.warning(f"Cannot resolve {frame.frame_name}: {e}")
            return None

    def _read(self, frame: PersistedFrame) -> Optional[np.ndarray]:
        self._loads += 1
        try:
            raw = load_image(self.storage.resolve(frame.image_relative_path))
        except StorageError as e:
            logger.warning(f"Cannot resolve {frame.frame_name}: {e}")
            return None
        if raw is None:
            return None

        if self.canvas_size is not None:
            width, height = self.canvas_size
            if raw.shape[1] != width or raw.shape[0] != height:
                raw = cv2.resize(raw, (width, height), interpolation=cv2.INTER_AREA)
        return to_float_image(raw)

    @property
    def resident_count(self) -> int:
        """Decoded images currently cached."""
        return len(self._cache)

    def metrics(self) -> dict:
        return {
            "frames": len(self.frames),
            "resident": len(self._cache),
            "cache_size": self.cache_size,
            "loads": self._loads,
        }
