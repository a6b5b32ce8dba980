"""Debounced, de-duplicated viewport queries for the map consumption mode.

Each map view owns one coordinator. Viewport-change signals restart a
debounce timer; only a signal that survives the quiet period is fetched.

Every signal bumps a monotonically increasing generation. A fetch remembers
the generation it was issued for, and its result is applied only if that is
still the coordinator's current generation when it resolves. A settled
request whose canonical key equals the last issued request makes no network
call: it reuses the applied items, or adopts the matching in-flight fetch.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from contextlib import suppress
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Hashable, Literal, Optional

from geofeed.feed.domain.models import AnnotatedContentItem, ViewportRequest
from geofeed.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

ViewportLoader = Callable[[ViewportRequest], Awaitable[list[AnnotatedContentItem]]]
OutcomeStatus = Literal["applied", "duplicate", "superseded"]


class ViewportState(str, Enum):
    IDLE = "idle"
    PENDING_SETTLE = "pending_settle"
    FETCHING = "fetching"


@dataclass(slots=True)
class ViewportOutcome:
    status: OutcomeStatus
    generation: int
    items: list[AnnotatedContentItem] = field(default_factory=list)


@dataclass(slots=True, eq=False)
class _InFlight:
    key: str
    generation: int
    waiters: list[asyncio.Future] = field(default_factory=list)
    task: Optional[asyncio.Task] = None


def _resolve(waiters: list[asyncio.Future], outcome: ViewportOutcome) -> None:
    for waiter in waiters:
        if not waiter.done():
            waiter.set_result(outcome)


class ViewportQueryCoordinator:
    def __init__(self, loader: ViewportLoader, *, debounce_seconds: float) -> None:
        self._loader = loader
        self.debounce_seconds = max(0.0, debounce_seconds)
        self.state = ViewportState.IDLE
        self.generation = 0
        self.items: list[AnnotatedContentItem] = []
        self.fetches_issued = 0
        self._last_issued_key: Optional[str] = None
        self._pending_request: Optional[ViewportRequest] = None
        self._pending_waiters: list[asyncio.Future] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._current: Optional[_InFlight] = None
        self._inflight: set[_InFlight] = set()

    def viewport_changed(self, request: ViewportRequest) -> "asyncio.Future[ViewportOutcome]":
        """Register a viewport-change signal and return a future for its outcome."""

        loop = asyncio.get_running_loop()
        self.generation += 1
        waiter: asyncio.Future = loop.create_future()
        superseded = self._pending_waiters
        self._pending_waiters = [waiter]
        self._pending_request = request
        if superseded:
            obs_metrics.inc_viewport_outcome("debounced")
            _resolve(superseded, ViewportOutcome("superseded", self.generation))
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.debounce_seconds, self._settle)
        self.state = ViewportState.PENDING_SETTLE
        return waiter

    def _settle(self) -> None:
        self._timer = None
        request = self._pending_request
        waiters = self._pending_waiters
        self._pending_request = None
        self._pending_waiters = []
        if request is None:
            self._refresh_state()
            return
        key = request.canonical_key()
        if key == self._last_issued_key:
            current = self._current
            if current is not None and current in self._inflight:
                current.generation = self.generation
                current.waiters.extend(waiters)
                obs_metrics.inc_viewport_outcome("adopted")
                self._refresh_state()
                return
            obs_metrics.inc_viewport_outcome("duplicate")
            _resolve(waiters, ViewportOutcome("duplicate", self.generation, list(self.items)))
            self._refresh_state()
            return
        self._last_issued_key = key
        inflight = _InFlight(key=key, generation=self.generation, waiters=list(waiters))
        self._current = inflight
        self._inflight.add(inflight)
        self.fetches_issued += 1
        inflight.task = asyncio.ensure_future(self._run(request, inflight))
        self.state = ViewportState.FETCHING

    async def _run(self, request: ViewportRequest, inflight: _InFlight) -> None:
        try:
            items = await self._loader(request)
        except Exception as exc:
            was_current = self._current is inflight
            self._finish(inflight)
            if was_current and self._last_issued_key == inflight.key:
                # A failed fetch never counts as issued for duplicate suppression
                self._last_issued_key = None
            if inflight.generation == self.generation:
                for waiter in inflight.waiters:
                    if not waiter.done():
                        waiter.set_exception(exc)
            else:
                _resolve(inflight.waiters, ViewportOutcome("superseded", self.generation))
            return
        was_current = self._current is inflight
        self._finish(inflight)
        if inflight.generation != self.generation:
            if was_current and self._last_issued_key == inflight.key:
                # self.items never holds this key's result, so it is no longer issued
                self._last_issued_key = None
            obs_metrics.inc_viewport_outcome("superseded")
            logger.debug(
                "viewport.superseded",
                extra={"issued_generation": inflight.generation, "current_generation": self.generation},
            )
            _resolve(inflight.waiters, ViewportOutcome("superseded", self.generation))
            return
        self.items = items
        obs_metrics.inc_viewport_outcome("applied")
        _resolve(inflight.waiters, ViewportOutcome("applied", inflight.generation, list(items)))

    def _finish(self, inflight: _InFlight) -> None:
        self._inflight.discard(inflight)
        if self._current is inflight:
            self._current = None
        self._refresh_state()

    def _refresh_state(self) -> None:
        if self._timer is not None:
            self.state = ViewportState.PENDING_SETTLE
        elif self._inflight:
            self.state = ViewportState.FETCHING
        else:
            self.state = ViewportState.IDLE

    async def close(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.generation += 1
        _resolve(self._pending_waiters, ViewportOutcome("superseded", self.generation))
        self._pending_waiters = []
        self._pending_request = None
        inflight = list(self._inflight)
        for entry in inflight:
            if entry.task is not None:
                entry.task.cancel()
        for entry in inflight:
            if entry.task is not None:
                with suppress(asyncio.CancelledError):
                    await entry.task
            _resolve(entry.waiters, ViewportOutcome("superseded", self.generation))
        self._inflight.clear()
        self._current = None
        self.state = ViewportState.IDLE


class ViewportRegistry:
    """Keeps one coordinator per map view, dropping the least recently used."""

    def __init__(self, *, debounce_seconds: float, max_views: int) -> None:
        self.debounce_seconds = debounce_seconds
        self.max_views = max(1, max_views)
        self._views: "OrderedDict[Hashable, ViewportQueryCoordinator]" = OrderedDict()
        self._closing: set[asyncio.Task] = set()

    def get_or_create(self, view_key: Hashable, loader: ViewportLoader) -> ViewportQueryCoordinator:
        coordinator = self._views.get(view_key)
        if coordinator is not None:
            self._views.move_to_end(view_key)
            return coordinator
        coordinator = ViewportQueryCoordinator(loader, debounce_seconds=self.debounce_seconds)
        self._views[view_key] = coordinator
        while len(self._views) > self.max_views:
            _, evicted = self._views.popitem(last=False)
            task = asyncio.ensure_future(evicted.close())
            self._closing.add(task)
            task.add_done_callback(self._closing.discard)
        obs_metrics.set_active_views(len(self._views))
        return coordinator

    def __len__(self) -> int:
        return len(self._views)

    async def close(self) -> None:
        views = list(self._views.values())
        self._views.clear()
        for coordinator in views:
            await coordinator.close()
        obs_metrics.set_active_views(0)


__all__ = [
    "ViewportQueryCoordinator",
    "ViewportRegistry",
    "ViewportOutcome",
    "ViewportState",
]
