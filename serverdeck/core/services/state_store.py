"""
ApplicationStateStore — single-writer ownership of an ApplicationState.

Providers compute results wherever they run and submit them here; one
owner task pulls submissions off a queue and applies them in order.
Nothing else ever writes to the state.

When the owning session goes away the store is closed: the owner task
is cancelled, queued changes are dropped, and later submissions are
refused. A provider still running against a closed store therefore
abandons its writes instead of completing a stale mutation.

    async with ApplicationStateStore("nginx") as store:
        await registry.load_data(section, app, store, session)
        print(store.state.version)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from serverdeck.core.models.state import ApplicationState

logger = logging.getLogger(__name__)

Mutator = Callable[[ApplicationState], None]
Submissions = asyncio.Queue[tuple[Mutator, asyncio.Future[bool]]]


class ApplicationStateStore:
    """Owns one ApplicationState and applies changes on a single task."""

    def __init__(self, application_id: str, state: ApplicationState | None = None):
        self.application_id = application_id.lower()
        self._state = state or ApplicationState(application_id=self.application_id)
        self._queue: Submissions | None = None
        self._owner: asyncio.Task[None] | None = None
        self._closed = False

    # ── Lifecycle ───────────────────────────────────────────────

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> ApplicationState:
        """Read view of the current state. Do not mutate directly."""
        return self._state

    def snapshot(self) -> ApplicationState:
        """Deep copy of the current state."""
        return self._state.model_copy(deep=True)

    def start(self) -> None:
        """Start the owner task. Idempotent; must run inside an event loop."""
        if self._closed:
            raise RuntimeError(f"State store for {self.application_id} is closed")
        if self._owner is None:
            self._queue = asyncio.Queue()
            self._owner = asyncio.get_running_loop().create_task(
                self._run(self._queue), name=f"state-owner:{self.application_id}"
            )

    async def close(self) -> None:
        """Stop accepting writes and discard anything still queued."""
        if self._closed:
            return
        self._closed = True
        if self._owner is not None:
            self._owner.cancel()
            try:
                await self._owner
            except asyncio.CancelledError:
                pass
        self._drain()

    async def __aenter__(self) -> ApplicationStateStore:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ── Writes ──────────────────────────────────────────────────

    async def mutate(self, mutator: Mutator) -> bool:
        """Submit a change and wait for the owner to apply it.

        Returns:
            True once applied, False if the store was closed and the
            change was abandoned.
        """
        if self._closed:
            logger.debug("Dropping write to closed state for %s", self.application_id)
            return False
        self.start()
        if self._queue is None:
            raise RuntimeError(f"State store for {self.application_id} has no owner task")

        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        await self._queue.put((mutator, future))
        try:
            return await future
        except asyncio.CancelledError:
            if self._closed:
                return False
            raise

    async def apply(self, **changes: Any) -> bool:
        """Set fields on the state. Unknown field names raise AttributeError."""
        for key in changes:
            if key not in ApplicationState.model_fields:
                raise AttributeError(f"ApplicationState has no field '{key}'")

        def _set(state: ApplicationState) -> None:
            for key, value in changes.items():
                setattr(state, key, value)

        return await self.mutate(_set)

    async def mark_loaded(self, section_id: str) -> bool:
        def _mark(state: ApplicationState) -> None:
            if section_id not in state.loaded_sections:
                state.loaded_sections.append(section_id)

        return await self.mutate(_mark)

    # ── Owner task ──────────────────────────────────────────────

    async def _run(self, queue: Submissions) -> None:
        while True:
            mutator, future = await queue.get()
            if future.cancelled():
                continue
            try:
                mutator(self._state)
            except Exception as e:
                future.set_exception(e)
            else:
                future.set_result(True)

    def _drain(self) -> None:
        if self._queue is None:
            return
        while not self._queue.empty():
            _, future = self._queue.get_nowait()
            if not future.done():
                future.cancel()
