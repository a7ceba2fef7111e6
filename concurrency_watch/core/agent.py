"""Per-instance interception of the mutating operations of a tracked container type."""

import copyreg
import functools
import logging
import sys
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from concurrency_watch.exceptions import WatcherConfigurationError

from . import state
from .registry import OFFENDERS, OffenderRegistry

logger = logging.getLogger(__name__)


class Agent:
    """Marker base of every generated instrumentation mixin."""

    __slots__ = ()


class InstrumentationAgent:
    """Instruments live instances of a tracked type so that they report mutation attempts.

    Extending an instance swaps its class for a generated subclass that puts the
    agent's mixin in front of the original class. The mixin's interceptors
    record an offender while the watching flag is set and always delegate to
    the original implementation with the same arguments.

    Args:
        kind: The tracked container type (e.g. `dict`).
        methods: Names of the mutating operations to intercept.
        registry: The registry receiving offender entries.
    """

    def __init__(self, kind: type, methods: Iterable[str], registry: OffenderRegistry = OFFENDERS):
        self.kind = kind
        self.type_name = kind.__name__
        self.methods: Tuple[str, ...] = tuple(methods)
        self._registry = registry
        # original class -> instrumented class, or None when it cannot be extended
        self._extended: Dict[type, Optional[type]] = {}
        self.mixin = self._define_mixin()

    def _define_mixin(self) -> type:
        unknown = [name for name in self.methods if not callable(getattr(self.kind, name, None))]
        if unknown:
            raise WatcherConfigurationError(
                f"{self.type_name} has no mutating operation(s) named: {', '.join(unknown)}"
            )

        namespace: Dict[str, Any] = {"__slots__": ()}
        mixin: type = Agent  # rebound below, the interceptors resolve it at call time

        def intercept(name: str) -> Callable[..., Any]:
            registry = self._registry
            type_name = self.type_name

            @functools.wraps(getattr(self.kind, name))
            def intercepted(instance, *args, **kwargs):
                if state.watching:
                    registry.record(type_name, sys._getframe(1), instance)
                return getattr(super(mixin, instance), name)(*args, **kwargs)

            return intercepted

        def __reduce_ex__(instance, protocol):
            return _reduce_as_original(super(mixin, instance).__reduce_ex__(protocol), type(instance))

        for name in self.methods:
            namespace[name] = intercept(name)
        namespace["__reduce_ex__"] = __reduce_ex__
        mixin = type(f"{self.type_name.capitalize()}Agent", (Agent,), namespace)
        return mixin

    def carries(self, obj: Any) -> bool:
        """Whether `obj` is already instrumented by this agent."""
        return issubclass(type(obj), self.mixin)

    def extend(self, obj: Any) -> bool:
        """Instrument a single instance.

        Returns:
            True if `obj` is now instrumented by this call, False if it already
            was or if it cannot be extended (builtin instances, classes that
            refuse subclassing or `__class__` assignment).
        """
        if self.carries(obj):
            return False
        cls = type(obj)
        instrumented = self._instrumented_class(cls)
        if instrumented is None:
            return False
        try:
            obj.__class__ = instrumented
        except TypeError:
            self._extended[cls] = None
            return False
        return True

    def _instrumented_class(self, cls: type) -> Optional[type]:
        if cls in self._extended:
            return self._extended[cls]
        try:
            instrumented: Optional[type] = type(
                cls.__name__,
                (self.mixin, cls),
                {"__slots__": (), "__module__": cls.__module__, "__qualname__": cls.__qualname__},
            )
        except Exception as e:
            logger.debug(f"Cannot instrument {cls!r}: {e}")
            instrumented = None
        self._extended[cls] = instrumented
        return instrumented


def original_class(instrumented: type) -> type:
    """The class an instrumented class was generated for."""
    return next(cls for cls in instrumented.__mro__[1:] if not issubclass(cls, Agent))


def _reduce_as_original(reduced: Any, instrumented: type) -> Any:
    """Rewrite a reduction so that it rebuilds an instance of the original class.

    Pickle and copy then produce plain, uninstrumented instances and the
    generated class never has to be found by name.
    """
    if not isinstance(reduced, tuple):
        return reduced
    original = original_class(instrumented)
    func, args, *rest = reduced
    if func is copyreg.__newobj__:
        func, args = original.__new__, (original, *args[1:])
    elif func is copyreg.__newobj_ex__:
        _, new_args, new_kwargs = args
        func, args = functools.partial(original.__new__, original, *new_args, **new_kwargs), ()
    else:
        if func is instrumented:
            func = original
        args = tuple(original if arg is instrumented else arg for arg in args)
    return (func, args, *rest)
