"""
One-time loading of the resources the map needs before it can be used
(tile protocol, crop layer, ...).
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

Step = Callable[[], Union[None, Awaitable[None]]]


class ResourceLoader:
    """
    Runs a list of named loading steps exactly once.

    ``ensure_loaded()`` is idempotent: concurrent callers share one load, and
    later callers return immediately once it has succeeded. A failed load is
    forgotten so the next call retries it.
    """

    def __init__(self, steps: Optional[List[Tuple[str, Step]]] = None):
        self.steps: List[Tuple[str, Step]] = list(steps or [])
        self.ready = False
        self._task: Optional[asyncio.Task] = None

    def add_step(self, name: str, step: Step) -> None:
        if self.ready:
            raise RuntimeError(f"Cannot add step '{name}': resources already loaded")
        self.steps.append((name, step))

    def reset(self) -> None:
        """Forget a completed load so the steps run again on the next call."""
        self.ready = False
        self._task = None

    async def ensure_loaded(self) -> bool:
        if self.ready:
            return True
        if self._task is None:
            self._task = asyncio.ensure_future(self._load())
        try:
            await self._task
        except Exception:
            self._task = None
            raise
        return True

    async def _load(self) -> None:
        for name, step in self.steps:
            logger.info("Loading map resource: %s", name)
            outcome = step()
            if inspect.isawaitable(outcome):
                await outcome
        self.ready = True
