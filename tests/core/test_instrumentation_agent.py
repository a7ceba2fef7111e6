"""Unit tests for the instrumentation agent."""

import collections
import copy
import pickle
import sys

import pytest
from concurrency_watch.core import state
from concurrency_watch.core.agent import Agent, InstrumentationAgent, original_class
from concurrency_watch.core.registry import OffenderRegistry
from concurrency_watch.core.watcher import DICT_MUTATORS, LIST_MUTATORS, SET_MUTATORS
from concurrency_watch.exceptions import WatcherConfigurationError

from tests.helpers.containers import ProbeDict, ProbeList, ProbeSet


@pytest.fixture
def registry() -> OffenderRegistry:
    registry = OffenderRegistry()
    for name in ("ProbeDict", "ProbeList", "ProbeSet"):
        registry.register(name)
    return registry


@pytest.fixture
def watching():
    """Opens the watching flag for the duration of the test."""
    state.arm()
    yield
    state.disarm()


class TestInstrumentationAgentInit:
    def test_mixin_defines_every_method(self, registry):
        agent = InstrumentationAgent(ProbeDict, DICT_MUTATORS, registry)

        assert issubclass(agent.mixin, Agent)
        assert agent.type_name == "ProbeDict"
        for name in DICT_MUTATORS:
            assert name in agent.mixin.__dict__

    def test_unknown_method_raises(self, registry):
        with pytest.raises(WatcherConfigurationError, match="no_such_method"):
            InstrumentationAgent(ProbeList, ["append", "no_such_method"], registry)


class TestExtend:
    def test_extend_instruments_instance(self, registry):
        agent = InstrumentationAgent(ProbeDict, DICT_MUTATORS, registry)
        instance = ProbeDict(a=1)

        assert agent.extend(instance) is True
        assert agent.carries(instance)
        assert isinstance(instance, ProbeDict)
        assert type(instance).__name__ == "ProbeDict"
        assert instance == {"a": 1}

    def test_extend_is_idempotent(self, registry):
        agent = InstrumentationAgent(ProbeDict, DICT_MUTATORS, registry)
        instance = ProbeDict()
        agent.extend(instance)
        instrumented_class = type(instance)

        assert agent.extend(instance) is False
        assert type(instance) is instrumented_class

    def test_instrumented_class_is_shared_per_original_class(self, registry):
        agent = InstrumentationAgent(ProbeList, LIST_MUTATORS, registry)
        first, second = ProbeList(), ProbeList()
        agent.extend(first)
        agent.extend(second)

        assert type(first) is type(second)

    def test_builtin_instance_cannot_be_extended(self, registry):
        agent = InstrumentationAgent(dict, DICT_MUTATORS, registry)
        instance = {}

        assert agent.extend(instance) is False
        assert type(instance) is dict
        assert not agent.carries(instance)

    def test_class_refusing_subclasses_is_skipped(self, registry):
        class Sealed(ProbeSet):
            def __init_subclass__(cls, **kwargs):
                raise TypeError("Sealed cannot be subclassed")

        agent = InstrumentationAgent(ProbeSet, SET_MUTATORS, registry)
        instance = Sealed()

        assert agent.extend(instance) is False
        assert type(instance) is Sealed

    def test_slotted_class_keeps_its_slots(self, registry):
        class Slotted(ProbeList):
            __slots__ = ("label",)

        agent = InstrumentationAgent(ProbeList, LIST_MUTATORS, registry)
        instance = Slotted([1])
        instance.label = "shared"

        assert agent.extend(instance) is True
        assert instance.label == "shared"
        instance.append(2)
        assert instance == [1, 2]


class TestInterception:
    def test_no_record_when_not_watching(self, registry):
        agent = InstrumentationAgent(ProbeDict, DICT_MUTATORS, registry)
        instance = ProbeDict()
        agent.extend(instance)

        instance["a"] = 1
        instance.update(b=2)
        del instance["a"]

        assert instance == {"b": 2}
        assert registry.entries("ProbeDict") == []

    def test_records_caller_line_when_watching(self, registry, watching):
        agent = InstrumentationAgent(ProbeDict, DICT_MUTATORS, registry)
        instance = ProbeDict()
        agent.extend(instance)

        instance["a"] = 1
        expected_line = sys._getframe().f_lineno - 1

        entries = registry.entries("ProbeDict")
        assert len(entries) == 1
        assert entries[0].value is instance
        assert entries[0].call_site.filename == __file__
        assert entries[0].call_site.lineno == expected_line
        assert entries[0].stack[-1].name == "test_records_caller_line_when_watching"

    def test_return_values_are_preserved(self, registry, watching):
        agent = InstrumentationAgent(ProbeDict, DICT_MUTATORS, registry)
        instance = ProbeDict(a=1)
        agent.extend(instance)

        assert instance.pop("a") == 1
        assert instance.setdefault("b", 2) == 2
        assert instance.popitem() == ("b", 2)

    def test_exceptions_are_preserved(self, registry, watching):
        agent = InstrumentationAgent(ProbeList, LIST_MUTATORS, registry)
        instance = ProbeList()
        agent.extend(instance)

        with pytest.raises(IndexError):
            instance.pop()
        with pytest.raises(TypeError):
            instance.append()

        assert len(registry.entries("ProbeList")) == 2

    def test_in_place_operators_keep_identity(self, registry, watching):
        list_agent = InstrumentationAgent(ProbeList, LIST_MUTATORS, registry)
        set_agent = InstrumentationAgent(ProbeSet, SET_MUTATORS, registry)
        items, members = ProbeList([1]), ProbeSet({1, 2})
        list_agent.extend(items)
        set_agent.extend(members)
        original_items, original_members = items, members

        items += [2]
        items *= 2
        members -= {1}
        members |= {3}

        assert items is original_items
        assert items == [1, 2, 1, 2]
        assert members is original_members
        assert members == {2, 3}
        assert len(registry.entries("ProbeList")) == 2
        assert len(registry.entries("ProbeSet")) == 2

    def test_non_mutating_operations_are_not_recorded(self, registry, watching):
        agent = InstrumentationAgent(ProbeSet, SET_MUTATORS, registry)
        instance = ProbeSet({1})
        agent.extend(instance)

        assert 1 in instance
        assert instance | {2} == {1, 2}
        assert len(instance) == 1

        assert registry.entries("ProbeSet") == []

    def test_wrapped_methods_keep_their_names(self, registry):
        agent = InstrumentationAgent(ProbeList, LIST_MUTATORS, registry)

        assert agent.mixin.append.__name__ == "append"
        assert agent.mixin.__setitem__.__name__ == "__setitem__"


class TestSerialization:
    @pytest.mark.parametrize("protocol", range(pickle.HIGHEST_PROTOCOL + 1))
    def test_instrumented_dict_pickles_as_its_original_class(self, registry, protocol):
        agent = InstrumentationAgent(ProbeDict, DICT_MUTATORS, registry)
        instance = ProbeDict(a=1)
        instance.label = "shared"
        agent.extend(instance)

        restored = pickle.loads(pickle.dumps(instance, protocol))

        assert type(restored) is ProbeDict
        assert restored == {"a": 1}
        assert restored.label == "shared"
        assert agent.carries(instance)

    @pytest.mark.parametrize("protocol", range(pickle.HIGHEST_PROTOCOL + 1))
    def test_instrumented_list_and_set_pickle(self, registry, protocol):
        list_agent = InstrumentationAgent(ProbeList, LIST_MUTATORS, registry)
        set_agent = InstrumentationAgent(ProbeSet, SET_MUTATORS, registry)
        items, members = ProbeList([1, 2]), ProbeSet({3})
        list_agent.extend(items)
        set_agent.extend(members)

        restored_items = pickle.loads(pickle.dumps(items, protocol))
        restored_members = pickle.loads(pickle.dumps(members, protocol))

        assert type(restored_items) is ProbeList
        assert restored_items == [1, 2]
        assert type(restored_members) is ProbeSet
        assert restored_members == {3}

    def test_library_subclass_with_its_own_reduce_pickles(self, registry):
        agent = InstrumentationAgent(dict, DICT_MUTATORS, registry)
        counts = collections.Counter(a=1)
        assert agent.extend(counts) is True

        restored = pickle.loads(pickle.dumps(counts))

        assert type(restored) is collections.Counter
        assert restored == collections.Counter(a=1)

    def test_copies_are_plain_instances(self, registry, watching):
        agent = InstrumentationAgent(ProbeDict, DICT_MUTATORS, registry)
        instance = ProbeDict(a=[1])
        agent.extend(instance)

        shallow = copy.copy(instance)
        deep = copy.deepcopy(instance)
        shallow["b"] = 2

        assert type(shallow) is ProbeDict
        assert type(deep) is ProbeDict
        assert shallow["a"] is instance["a"]
        assert deep == {"a": [1]} and deep["a"] is not instance["a"]
        assert registry.entries("ProbeDict") == []

    def test_original_class_skips_the_mixin(self, registry):
        agent = InstrumentationAgent(ProbeList, LIST_MUTATORS, registry)
        instance = ProbeList()
        agent.extend(instance)

        assert original_class(type(instance)) is ProbeList
