"""
Off-loop full-resolution RAW decoding.

Each job runs in a fresh single-worker process pool that is shut down once
the job completes, so a large decode never blocks interactive pan and zoom.
The decoded array comes back by value; the worker keeps no reference to it.
"""

import asyncio
import logging
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Callable, Optional

from .decoder import DecodedImage, decode_buffer

logger = logging.getLogger(__name__)

DEFAULT_PIXEL_BUDGET = 20_000_000


@dataclass
class FullResolutionResult:
    """A finished job, tagged with the selection generation that requested it."""
    generation: int
    image: DecodedImage


def _single_process_pool() -> Executor:
    return ProcessPoolExecutor(max_workers=1)


class FullResolutionLoader:
    """
    Dispatches full-resolution decodes to an isolated worker.

    Args:
        pixel_budget: Largest decoded image (in pixels) that will be accepted
        use_dcraw: Passed to the worker's decoder chain
        dcraw_path: Passed to the worker's decoder chain
        executor_factory: Creates the executor for one job
        decode_fn: Callable ``(buffer, half_size, use_dcraw, dcraw_path)`` run in the worker
    """

    def __init__(self, pixel_budget: int = DEFAULT_PIXEL_BUDGET, use_dcraw: bool = True,
                 dcraw_path: str = 'dcraw',
                 executor_factory: Callable[[], Executor] = _single_process_pool,
                 decode_fn: Callable[..., DecodedImage] = decode_buffer):
        self.pixel_budget = pixel_budget
        self.use_dcraw = use_dcraw
        self.dcraw_path = dcraw_path
        self.executor_factory = executor_factory
        self.decode_fn = decode_fn
        self.jobs_started = 0

    async def load(self, buffer: bytes, generation: int) -> Optional[FullResolutionResult]:
        """
        Decode ``buffer`` at full resolution in a worker.

        Returns:
            The tagged result, or None if the image exceeds the pixel budget

        Raises:
            DecodeError: if the worker's strategy chain is exhausted
        """
        loop = asyncio.get_running_loop()
        executor = self.executor_factory()
        self.jobs_started += 1
        logger.debug(f"Starting full-resolution decode for generation {generation}")
        try:
            image = await loop.run_in_executor(
                executor,
                partial(self.decode_fn, bytes(buffer), False, self.use_dcraw, self.dcraw_path)
            )
        finally:
            executor.shutdown(wait=False)

        if image.pixel_count > self.pixel_budget:
            logger.warning(f"Full-resolution image {image.width}x{image.height} exceeds the "
                           f"{self.pixel_budget} pixel budget, keeping the preview resolution")
            return None
        return FullResolutionResult(generation, image)
