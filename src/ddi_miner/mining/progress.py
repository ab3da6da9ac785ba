"""
Progress snapshots and non-blocking dispatch to a progress sink.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from typing import Any

from ddi_miner.console import warn

ProgressCallback = Callable[["ProgressSnapshot"], Awaitable[Any] | Any]


@dataclass(frozen=True)
class ProgressSnapshot:
    """Immutable view of a mining run, handed to the progress sink."""

    phase: str = "idle"
    completed: int = 0
    total: int = 0
    current_drug: str | None = None
    extracted_evidence: int = 0
    normalized_evidence: int = 0
    errors: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["errors"] = list(self.errors)
        return data


class ProgressDispatcher:
    """
    Deliver snapshots to a sync or async callback without awaiting it.

    Sync callbacks run on the next loop iteration; async callbacks run as
    tasks. Exceptions raised by the callback are reported and dropped.
    """

    def __init__(self, callback: ProgressCallback | None = None):
        self.callback = callback
        self._tasks: set[asyncio.Task] = set()

    def emit(self, snapshot: ProgressSnapshot) -> None:
        if self.callback is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._call(snapshot)
            return
        if inspect.iscoroutinefunction(self.callback):
            task = loop.create_task(self._call_async(snapshot))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            loop.call_soon(self._call, snapshot)

    def _call(self, snapshot: ProgressSnapshot) -> None:
        try:
            self.callback(snapshot)
        except Exception as e:
            warn(f"progress callback failed: {e}")

    async def _call_async(self, snapshot: ProgressSnapshot) -> None:
        try:
            await self.callback(snapshot)
        except Exception as e:
            warn(f"progress callback failed: {e}")

    async def drain(self) -> None:
        """Wait for callbacks already scheduled."""
        await asyncio.sleep(0)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
