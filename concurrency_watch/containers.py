"""Containers meant to be shared between requests.

Instances of the builtin ``dict``, ``list`` and ``set`` cannot be instrumented,
so state that is intentionally shared across requests should use these
subclasses. They behave exactly like their builtin bases.

A literal ``{}``, ``[]`` or ``set()`` is never watched: mutating one from two
call sites inside a watch cycle reports nothing. The same code on a
``SharedDict`` (or any other Python-level subclass) reports both call sites.
"""


class SharedDict(dict):
    """A ``dict`` whose mutations are reported while a watch cycle is open."""


class SharedList(list):
    """A ``list`` whose mutations are reported while a watch cycle is open."""


class SharedSet(set):
    """A ``set`` whose mutations are reported while a watch cycle is open."""
