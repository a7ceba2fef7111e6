"""Process-wide registry of mutation attempts, deduplicated by call site."""

import traceback
from dataclasses import dataclass
from types import FrameType
from typing import Any, Dict, List

from .call_site import CallSite, capture_stack


@dataclass
class OffenderEntry:
    """First recorded mutation attempt at a call site during a watch cycle."""

    call_site: CallSite
    value: Any  # the mutated container itself, compared by identity
    stack: traceback.StackSummary


class OffenderRegistry:
    """Maps a tracked type name to the offenders recorded for it.

    Writes are unsynchronized. Two threads reaching a new call site at the same
    time may both store an entry, and which of them is kept is not defined.
    Either way the call site is reported once.
    """

    def __init__(self) -> None:
        self._slots: Dict[str, Dict[CallSite, OffenderEntry]] = {}

    def register(self, type_name: str) -> Dict[CallSite, OffenderEntry]:
        """Return the slot for `type_name`, creating it on first use."""
        return self._slots.setdefault(type_name, {})

    def slot(self, type_name: str) -> Dict[CallSite, OffenderEntry]:
        return self._slots[type_name]

    def record(self, type_name: str, frame: FrameType, value: Any) -> bool:
        """Record a mutation of `value` attempted from `frame`.

        The first attempt per call site wins; the stack is only captured for a
        call site not seen yet in this cycle.

        Returns:
            True if a new entry was stored.
        """
        slot = self._slots.get(type_name)
        if slot is None:
            return False
        call_site = CallSite.from_frame(frame)
        if call_site in slot:
            return False
        slot[call_site] = OffenderEntry(call_site=call_site, value=value, stack=capture_stack(frame))
        return True

    def entries(self, type_name: str) -> List[OffenderEntry]:
        return list(self._slots.get(type_name, {}).values())

    def clear(self, type_name: str) -> None:
        slot = self._slots.get(type_name)
        if slot is not None:
            slot.clear()

    def is_internal(self, obj: Any) -> bool:
        """Whether `obj` is one of the containers backing this registry."""
        if obj is self._slots:
            return True
        return any(obj is slot for slot in self._slots.values())


OFFENDERS = OffenderRegistry()
