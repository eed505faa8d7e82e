"""
Background execution of the analysis pipeline.

Detection, deskew and enhancement are synchronous numpy passes that can take
a noticeable fraction of a second on full-resolution images. An interactive
caller submits them here and receives a ``concurrent.futures.Future``, so it
is never blocked while a result is computed.

Design:
    - One lazily created module-level ThreadPoolExecutor shared by all calls
    - Exceptions raised by the pipeline propagate through ``Future.result()``
    - No cancellation, timeout or progress reporting
    - Deduplicating repeated calls is the caller's job (see EnhancementCache)

Example:
    >>> future = detect_loops_async(pixels)
    >>> ... # keep the UI responsive
    >>> loops = future.result()
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional, TypeVar

import numpy as np

from capillary.detection.strategies.capillary_loop import detect_loops
from capillary.io.image_loader import ImageSource
from capillary.preprocessing.deskew import calculate_skew_angle
from capillary.preprocessing.enhancement import enhance_image
from capillary.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

DEFAULT_MAX_WORKERS = 2

_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def get_executor(max_workers: int = DEFAULT_MAX_WORKERS) -> ThreadPoolExecutor:
    """
    Return the shared executor, creating it on first use.

    ``max_workers`` only applies when the executor is created.
    """
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=max_workers,
                thread_name_prefix="capillary",
            )
            logger.debug("Started analysis executor with %d workers", max_workers)
        return _executor


def submit(fn: Callable[..., T], *args: Any, **kwargs: Any) -> "Future[T]":
    """Run ``fn(*args, **kwargs)`` on the shared executor."""
    return get_executor().submit(fn, *args, **kwargs)


def detect_loops_async(pixels: np.ndarray, **params: Any) -> "Future[list]":
    """Future resolving to the DetectedLoop list for ``pixels``."""
    return submit(detect_loops, pixels, **params)


def calculate_skew_angle_async(pixels: np.ndarray, **params: Any) -> "Future[float]":
    """Future resolving to the deskew angle in degrees."""
    return submit(calculate_skew_angle, pixels, **params)


def enhance_image_async(source: ImageSource, **params: Any) -> "Future[bytes]":
    """Future resolving to the enhanced JPEG bytes."""
    return submit(enhance_image, source, **params)


def map_images(
    fn: Callable[[Any], T],
    items: List[Any],
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> List[T]:
    """
    Apply ``fn`` to every item in parallel, preserving input order.

    Uses a private executor that is shut down before returning; the first
    exception raised by ``fn`` propagates to the caller.

    Example:
        >>> angles = map_images(calculate_skew_angle, [img_a, img_b])
    """
    if not items:
        return []

    if max_workers <= 1 or len(items) <= 1:
        return [fn(item) for item in items]

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(fn, items))


def shutdown(wait: bool = True) -> None:
    """
    Shut down the shared executor. A later submission starts a new one.
    """
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=wait)
            _executor = None
            logger.debug("Analysis executor shut down")
