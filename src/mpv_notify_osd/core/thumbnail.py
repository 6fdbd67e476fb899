"""Thumbnail rescale cache.

A captured frame arrives as raw RGBA rows (width, height, stride). The cache
keeps one pipeline per frame shape: a preallocated destination buffer, the
scaler that writes into it and the image wrapper handed to the notification
backend. Either the whole pipeline exists or none of it does.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time

import numpy as np
from PIL import Image

from .options import ScalingAlgorithm

logger = logging.getLogger(__name__)

# D-Bus caps a message at 128 MiB; leave room for the rest of it
MAX_IMAGE_SIZE = 127 * 1024 * 1024

_RESAMPLING = {
    ScalingAlgorithm.FAST_BILINEAR: Image.Resampling.BOX,
    ScalingAlgorithm.BILINEAR: Image.Resampling.BILINEAR,
    ScalingAlgorithm.BICUBIC: Image.Resampling.BICUBIC,
    ScalingAlgorithm.LANCZOS: Image.Resampling.LANCZOS,
}


@dataclass(frozen=True)
class ThumbnailImage:
    """RGBA pixels owned by the cache, shared with the backend."""

    width: int
    height: int
    stride: int
    data: np.ndarray

    def tobytes(self) -> bytes:
        return self.data.tobytes()


def scaled_size(src_w: int, src_h: int, target: int) -> tuple[int, int]:
    """Fit ``src_w x src_h`` into ``target`` on its longer side, at least 1px."""
    longer = max(src_w, src_h)
    return max(1, src_w * target // longer), max(1, src_h * target // longer)


def _rows(data, width: int, height: int, stride: int) -> np.ndarray:
    """View ``data`` as an (h, w, 4) array, skipping any row padding."""
    flat = np.frombuffer(data, dtype=np.uint8, count=stride * height)
    return flat.reshape(height, stride)[:, : width * 4].reshape(height, width, 4)


class Scaler:
    """Resizes frames of one source shape into one destination shape."""

    def __init__(self, src_w: int, src_h: int, dst_w: int, dst_h: int, algorithm: ScalingAlgorithm):
        self.src_size = (src_w, src_h)
        self.dst_size = (dst_w, dst_h)
        self.algorithm = algorithm
        self._resample = _RESAMPLING[algorithm]

    def scale(self, src: np.ndarray, dst: np.ndarray) -> None:
        image = Image.fromarray(np.ascontiguousarray(src))
        resized = image.resize(self.dst_size, resample=self._resample)
        np.copyto(dst, np.asarray(resized, dtype=np.uint8))


@dataclass
class _Pipeline:
    src_w: int
    src_h: int
    src_stride: int
    dst_w: int
    dst_h: int
    dst_stride: int
    target: int
    algorithm: ScalingAlgorithm
    scaling_disabled: bool
    buffer: np.ndarray
    scaler: Scaler | None
    image: ThumbnailImage


class ThumbnailCache:
    """Owns at most one active scaling pipeline."""

    def __init__(self, max_size: int = MAX_IMAGE_SIZE):
        self.max_size = max_size
        self.last_elapsed_us = 0
        self._pipeline: _Pipeline | None = None

    @property
    def active(self) -> bool:
        return self._pipeline is not None

    @property
    def image(self) -> ThumbnailImage | None:
        return self._pipeline.image if self._pipeline else None

    @property
    def pipeline(self) -> _Pipeline | None:
        return self._pipeline

    def destroy(self) -> None:
        if self._pipeline is None:
            return
        self._pipeline = None
        logger.info("destroyed thumbnail context")

    def ensure_context(
        self,
        src_w: int,
        src_h: int,
        src_stride: int,
        target: int,
        algorithm: ScalingAlgorithm,
        scaling_disabled: bool,
    ) -> bool:
        """Reuse or rebuild the pipeline for a frame shape.

        Returns True when a pipeline is ready. A stride-only change while
        scaling is updated in place; the scaler does not depend on it.
        """
        current = self._pipeline
        if (
            current is not None
            and current.src_w == src_w
            and current.src_h == src_h
            and current.target == target
            and current.algorithm == algorithm
            and current.scaling_disabled == scaling_disabled
            and (not scaling_disabled or current.src_stride == src_stride)
        ):
            current.src_stride = src_stride
            return True

        self.destroy()

        if src_w <= 0 or src_h <= 0 or src_stride < src_w * 4:
            logger.error("bad thumbnail source geometry %dx%d stride %d", src_w, src_h, src_stride)
            return False

        if scaling_disabled:
            dst_w, dst_h, dst_stride = src_w, src_h, src_stride
            scaler = None
        else:
            dst_w, dst_h = scaled_size(src_w, src_h, target)
            dst_stride = dst_w * 4
            scaler = Scaler(src_w, src_h, dst_w, dst_h, algorithm)

        alloc_size = dst_stride * dst_h
        if alloc_size > self.max_size:
            logger.error("thumbnail output resolution is too large, disabling thumbnails")
            return False

        try:
            buffer = np.zeros(alloc_size, dtype=np.uint8)
        except MemoryError:
            logger.error("failed to allocate %d bytes for the thumbnail", alloc_size)
            return False

        self._pipeline = _Pipeline(
            src_w=src_w,
            src_h=src_h,
            src_stride=src_stride,
            dst_w=dst_w,
            dst_h=dst_h,
            dst_stride=dst_stride,
            target=target,
            algorithm=algorithm,
            scaling_disabled=scaling_disabled,
            buffer=buffer,
            scaler=scaler,
            image=ThumbnailImage(dst_w, dst_h, dst_stride, buffer),
        )
        logger.info("configured thumbnail context %dx%d -> %dx%d", src_w, src_h, dst_w, dst_h)
        return True

    def process(self, data, measure: bool = False) -> ThumbnailImage | None:
        """Scale (or copy) one frame into the destination buffer."""
        pipeline = self._pipeline
        if pipeline is None:
            return None

        needed = pipeline.src_stride * pipeline.src_h
        if memoryview(data).nbytes < needed:
            logger.error("screenshot buffer is smaller than %d bytes", needed)
            return None

        started = time.perf_counter_ns() if measure else 0

        if pipeline.scaler is not None:
            src = _rows(data, pipeline.src_w, pipeline.src_h, pipeline.src_stride)
            dst = pipeline.buffer.reshape(pipeline.dst_h, pipeline.dst_w, 4)
            pipeline.scaler.scale(src, dst)
        else:
            size = pipeline.dst_stride * pipeline.dst_h
            pipeline.buffer[:] = np.frombuffer(data, dtype=np.uint8, count=size)

        if measure:
            self.last_elapsed_us = (time.perf_counter_ns() - started) // 1000

        return pipeline.image
