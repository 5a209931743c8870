"""Per-frame fan-out for frame transforms.

Frames of an animation are independent for geometry work, so they can be
processed on a thread pool (numpy releases the GIL for the copies). Results
are always gathered back in frame order, so serial and parallel runs produce
identical output.
"""

import logging
import multiprocessing as mp
import os
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, TypeVar

from .errors import OperationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class ParallelConfig:
    """Configuration for per-frame parallel processing."""

    max_workers: int | None = None
    min_frames: int = 8  # below this the pool overhead is not worth it
    enabled: bool = True

    def __post_init__(self) -> None:
        """Initialize configuration from environment variables."""
        if self.max_workers is None:
            env_workers = os.environ.get("FRAMEWARP_MAX_PARALLEL_WORKERS")
            if env_workers:
                try:
                    self.max_workers = int(env_workers)
                except ValueError:
                    logger.warning(
                        f"Invalid FRAMEWARP_MAX_PARALLEL_WORKERS: {env_workers}"
                    )
                    self.max_workers = mp.cpu_count()
            else:
                self.max_workers = mp.cpu_count()

        # Ensure reasonable bounds
        self.max_workers = max(1, min(self.max_workers, mp.cpu_count() * 2))

        env_enabled = os.environ.get("FRAMEWARP_PARALLEL")
        if env_enabled:
            self.enabled = env_enabled.lower() not in ("0", "false", "no")

        if self.min_frames < 1:
            raise ValueError(f"min_frames must be at least 1, got {self.min_frames}")


def _check_cancelled(cancel_event: threading.Event | None, done: int, total: int) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled(
            f"Operation cancelled after {done} of {total} frames",
            context={"completed_frames": done, "total_frames": total},
        )


def map_frames(
    func: Callable[[T], R],
    items: Sequence[T],
    config: ParallelConfig | None = None,
    cancel_event: threading.Event | None = None,
) -> list[R]:
    """Apply ``func`` to every item and return the results in input order.

    Args:
        func: Per-frame function; must not touch shared mutable state
        items: Frames (or frame payloads) to process
        config: Parallel configuration, defaults to ParallelConfig()
        cancel_event: Checked before each frame; when set the call stops

    Returns:
        List of results, ``results[i] == func(items[i])``

    Raises:
        OperationCancelled: If ``cancel_event`` is set before all frames ran
    """
    config = config or ParallelConfig()
    total = len(items)

    use_pool = (
        config.enabled
        and (config.max_workers or 1) > 1
        and total >= config.min_frames
    )

    if not use_pool:
        results: list[R] = []
        for index, item in enumerate(items):
            _check_cancelled(cancel_event, index, total)
            results.append(func(item))
        return results

    ordered: list[Any] = [None] * total
    done = 0
    with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
        futures = []
        for index, item in enumerate(items):
            if cancel_event is not None and cancel_event.is_set():
                break
            futures.append((index, executor.submit(func, item)))

        try:
            for index, future in futures:
                _check_cancelled(cancel_event, done, total)
                ordered[index] = future.result()
                done += 1
        except OperationCancelled:
            for _, future in futures:
                future.cancel()
            raise

    if done != total:
        # Submission stopped early on a cancellation request.
        raise OperationCancelled(
            f"Operation cancelled after {done} of {total} frames",
            context={"completed_frames": done, "total_frames": total},
        )
    return ordered
