"""Single-flight wrapper a host can put in front of the pipeline.

Only one transform job runs at a time; a second caller is rejected with
BusyError right away instead of waiting in a queue.
"""

import logging
import threading
from collections.abc import Callable, Mapping
from contextlib import contextmanager
from typing import Any

from . import pipeline
from .config import PipelineConfig
from .errors import BusyError
from .io import load_image_bytes
from .pipeline import TransformRequest, TransformResult

logger = logging.getLogger(__name__)


class SingleFlightGate:
    """Non-blocking, non-reentrant lock with explicit busy rejection."""

    def __init__(self, name: str = "transform"):
        self.name = name
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self):
        """Hold the gate for the duration of the block.

        Raises:
            BusyError: If another job already holds the gate
        """
        if not self._lock.acquire(blocking=False):
            raise BusyError(
                f"A {self.name} job is already running",
                context={"gate": self.name},
            )
        try:
            yield self
        finally:
            self._lock.release()


class TransformService:
    """Fetch bytes through a collaborator and run the pipeline one job at a time."""

    def __init__(
        self,
        fetch: Callable[[str], bytes] = load_image_bytes,
        config: PipelineConfig | None = None,
        gate: SingleFlightGate | None = None,
    ):
        self.fetch = fetch
        self.config = config or PipelineConfig()
        self.gate = gate or SingleFlightGate()
        logger.debug(f"TransformService configured: {self.config.as_dict()}")

    def process(
        self,
        reference: str,
        request: TransformRequest | Mapping[str, Any],
        target_format: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> TransformResult:
        """Resolve ``reference`` to bytes and transform them.

        The request is validated before the gate is taken or anything is
        fetched.

        Raises:
            BusyError: If another job is in progress
        """
        if not isinstance(request, TransformRequest):
            request = TransformRequest.from_dict(request)
        pipeline.normalize_target_format(target_format)

        with self.gate.hold():
            logger.info(f"Processing {request.kind.value} for {reference}")
            data = self.fetch(reference)
            return pipeline.run(
                data,
                request,
                target_format=target_format,
                config=self.config,
                cancel_event=cancel_event,
            )
