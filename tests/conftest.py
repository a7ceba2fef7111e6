import os
from typing import List

import pytest
from concurrency_watch.core import state
from concurrency_watch.core.registry import OFFENDERS, OffenderRegistry
from concurrency_watch.core.watcher import DICT_MUTATORS, LIST_MUTATORS, SET_MUTATORS, WATCHERS, Watcher

from tests.helpers.containers import ProbeDict, ProbeList, ProbeSet


@pytest.fixture(autouse=True)
def reset_watch_state():
    """AUTOUSE: Every test starts and ends outside a watch cycle with an empty global registry."""
    state.disarm()
    for watcher in WATCHERS:
        OFFENDERS.clear(watcher.name)
    yield
    state.disarm()
    for watcher in WATCHERS:
        OFFENDERS.clear(watcher.name)


@pytest.fixture
def registry() -> OffenderRegistry:
    """Provides a registry that is not shared with the default watchers."""
    return OffenderRegistry()


@pytest.fixture
def emitted() -> List[str]:
    """Collects the diagnostic lines emitted by the isolated watchers."""
    return []


@pytest.fixture
def dict_watcher(registry: OffenderRegistry, emitted: List[str]) -> Watcher:
    return Watcher(ProbeDict, DICT_MUTATORS, registry=registry, emit=emitted.append)


@pytest.fixture
def list_watcher(registry: OffenderRegistry, emitted: List[str]) -> Watcher:
    return Watcher(ProbeList, LIST_MUTATORS, registry=registry, emit=emitted.append)


@pytest.fixture
def set_watcher(registry: OffenderRegistry, emitted: List[str]) -> Watcher:
    return Watcher(ProbeSet, SET_MUTATORS, registry=registry, emit=emitted.append)


@pytest.fixture
def watchers(dict_watcher: Watcher, list_watcher: Watcher, set_watcher: Watcher) -> List[Watcher]:
    """Provides isolated dict, list and set watchers reporting into `emitted`."""
    return [dict_watcher, list_watcher, set_watcher]


@pytest.fixture
def helpers_on_path(monkeypatch) -> None:
    """Puts tests/helpers on the module search path so that 'mutators.py' can be whitelisted."""
    from tests.helpers import mutators

    monkeypatch.syspath_prepend(os.path.dirname(mutators.__file__))
