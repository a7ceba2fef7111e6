"""Watchers arm instrumentation for one tracked container type and report its offenders."""

import gc
import logging
from typing import Any, Callable, Iterable, List

from .agent import InstrumentationAgent
from .registry import OFFENDERS, OffenderEntry, OffenderRegistry
from .whitelist import Whitelist

logger = logging.getLogger(__name__)

REPORT_PREFIX = "[THREAD_SAFETY]"

DICT_MUTATORS = ["__setitem__", "__delitem__", "__ior__", "clear", "pop", "popitem", "setdefault", "update"]
LIST_MUTATORS = [
    "__setitem__",
    "__delitem__",
    "__iadd__",
    "__imul__",
    "append",
    "clear",
    "extend",
    "insert",
    "pop",
    "remove",
    "reverse",
    "sort",
]
SET_MUTATORS = [
    "__iand__",
    "__ior__",
    "__isub__",
    "__ixor__",
    "add",
    "clear",
    "difference_update",
    "discard",
    "intersection_update",
    "pop",
    "remove",
    "symmetric_difference_update",
    "update",
]


def format_offender(type_name: str, entry: OffenderEntry) -> str:
    return f"{REPORT_PREFIX} Potential concurrent {type_name} modification at: {entry.call_site}"


class Watcher:
    """Watches every live instance of one tracked container type.

    Args:
        kind: The tracked type. Instances of its subclasses are watched too.
        methods: Names of the mutating operations to intercept.
        whitelist: Glob rules of trusted source files.
        registry: Registry the agent records offenders into.
        emit: Callable receiving each diagnostic line, prints to stdout by default.
    """

    def __init__(
        self,
        kind: type,
        methods: Iterable[str],
        whitelist: Iterable[Any] = (),
        registry: OffenderRegistry = OFFENDERS,
        emit: Callable[[str], Any] = print,
    ):
        self.kind = kind
        self.name = kind.__name__
        self._registry = registry
        self._offenders = registry.register(self.name)
        self._whitelist = Whitelist(whitelist)
        self._emit = emit
        self.agent = InstrumentationAgent(kind, methods, registry)

    def __repr__(self) -> str:
        return f"<Watcher {self.name} rules={self._whitelist.rules!r}>"

    @property
    def whitelist_rules(self) -> List[str]:
        return self._whitelist.rules

    def whitelist(self, *rules: Any) -> None:
        """Add glob rules of trusted source files. Rules are never removed."""
        self._whitelist.merge(rules)

    def inject(self) -> int:
        """Instrument every currently live instance of the tracked type.

        Instances created after the scan starts are not instrumented for this
        cycle.

        Returns:
            The number of instances instrumented by this call.
        """
        injected = skipped = 0
        for obj in gc.get_objects():
            if not issubclass(type(obj), self.kind):
                continue
            if self._registry.is_internal(obj) or self.agent.carries(obj):
                continue
            if self.agent.extend(obj):
                injected += 1
            else:
                skipped += 1
        logger.debug(f"Injected {self.name} agent into {injected} instance(s), {skipped} could not be extended.")
        return injected

    def report_offenders(self, ignore: Callable[[Any], bool]) -> List[OffenderEntry]:
        """Emit a diagnostic for every recorded offender that is not trusted.

        An entry is suppressed when its call site is whitelisted, when its value
        is one of the registry's own containers, or when `ignore(value)` is true.
        The registry slot is emptied afterwards whatever happened.

        Returns:
            The entries that were reported.
        """
        self._whitelist.reset()
        reported = []
        try:
            for entry in list(self._offenders.values()):
                if self._is_trusted(entry) or ignore(entry.value):
                    continue
                self._emit(format_offender(self.name, entry))
                logger.debug(f"Stack of {self.name} mutation at {entry.call_site}:\n{''.join(entry.stack.format())}")
                reported.append(entry)
        finally:
            self._offenders.clear()
        return reported

    def _is_trusted(self, entry: OffenderEntry) -> bool:
        return self._registry.is_internal(entry.value) or self._whitelist.covers(entry.call_site)


DICT_WATCHER = Watcher(dict, DICT_MUTATORS, whitelist=["threading.py", "weakref.py"])
LIST_WATCHER = Watcher(list, LIST_MUTATORS, whitelist=["threading.py"])
SET_WATCHER = Watcher(set, SET_MUTATORS, whitelist=["_weakrefset.py"])

WATCHERS = [DICT_WATCHER, LIST_WATCHER, SET_WATCHER]
