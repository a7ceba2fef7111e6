"""Orchestration of a single watch cycle around a unit of work."""

import gc
import logging
from typing import Any, Callable, Iterable, List, Optional, TypeVar

from concurrency_watch.exceptions import WatchCycleActiveError

from . import state
from .watcher import WATCHERS, Watcher

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Tester:
    """Arms the watchers, runs a unit of work and reports what it mutated.

    Usage:
        Tester([request_scope]).watch(handle_request)

        with Tester([request_scope]):
            await call_next(request)

    Teardown (clearing the watching flag and draining every watcher) runs on
    every exit path; an exception raised by the unit of work propagates
    unchanged afterwards.

    Args:
        ignorables: Objects that are never reported for this cycle, compared by
            identity (e.g. the per-request context).
        watchers: The watchers to arm, defaults to the dict, list and set watchers.
    """

    def __init__(self, ignorables: Iterable[Any] = (), watchers: Optional[Iterable[Watcher]] = None):
        self._ignorables: List[Any] = list(ignorables)
        self._watchers: List[Watcher] = list(WATCHERS if watchers is None else watchers)

    def watch(self, unit_of_work: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        with self:
            return unit_of_work(*args, **kwargs)

    def __enter__(self) -> "Tester":
        self.setup()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.report()
        return False

    def setup(self) -> None:
        if state.is_watching():
            raise WatchCycleActiveError("A watch cycle is already active in this process.")
        # Collect first so that the scan in inject() sees only reachable instances.
        gc.collect()
        for watcher in self._watchers:
            watcher.inject()
        state.arm()

    def report(self) -> None:
        state.disarm()
        for watcher in self._watchers:
            try:
                watcher.report_offenders(self.ignorable)
            except Exception:
                logger.exception(f"Failed to report {watcher.name} offenders.")

    def ignorable(self, obj: Any) -> bool:
        return any(ignorable is obj for ignorable in self._ignorables)
