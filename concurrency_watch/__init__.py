"""Detects potential concurrent mutations of shared containers while a request is being served."""

from concurrency_watch.containers import SharedDict, SharedList, SharedSet
from concurrency_watch.core.tester import Tester
from concurrency_watch.core.watcher import DICT_WATCHER, LIST_WATCHER, SET_WATCHER, WATCHERS, Watcher
from concurrency_watch.middleware import ThreadSafetyMiddleware

__all__ = [
    "DICT_WATCHER",
    "LIST_WATCHER",
    "SET_WATCHER",
    "WATCHERS",
    "SharedDict",
    "SharedList",
    "SharedSet",
    "Tester",
    "ThreadSafetyMiddleware",
    "Watcher",
]
