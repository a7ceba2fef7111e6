"""Path-glob rules naming source files whose mutations are trusted."""

import fnmatch
import logging
import os
import sys
from typing import Any, FrozenSet, Iterable, Iterator, List, Optional

from concurrency_watch.exceptions import WatcherConfigurationError

from .call_site import CallSite

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    return os.path.normcase(os.path.abspath(path))


def loaded_source_files() -> List[str]:
    """Return the source file of every module currently loaded."""
    files = []
    for module in list(sys.modules.values()):
        filename = getattr(module, "__file__", None)
        if isinstance(filename, str):
            files.append(filename)
    return files


def to_loaded_paths(
    rule: str,
    search_path: Optional[Iterable[str]] = None,
    loaded_files: Optional[Iterable[str]] = None,
) -> List[str]:
    """Resolve one glob rule into the loaded source files it names.

    The rule is relative to "somewhere on the module search path": it is joined
    to every search path entry and each resulting pattern is matched against
    the loaded source files. `*` also matches across directory separators.

    Args:
        rule: Glob rule such as ``"threading.py"`` or ``"mypackage/cache/*.py"``.
        search_path: Directories to resolve against, defaults to ``sys.path``.
        loaded_files: Candidate files, defaults to the loaded modules' files.

    Returns:
        The normalized paths of the matching files.
    """
    search_path = list(sys.path if search_path is None else search_path)
    loaded = [normalize_path(f) for f in (loaded_source_files() if loaded_files is None else loaded_files)]
    matches = []
    for entry in search_path:
        if not isinstance(entry, str):
            continue
        pattern = normalize_path(os.path.join(entry or os.curdir, rule))
        matches.extend(f for f in loaded if fnmatch.fnmatchcase(f, pattern))
    return matches


def _flatten(rules: Iterable[Any]) -> Iterator[str]:
    for rule in rules:
        if rule is None:
            continue
        if isinstance(rule, (str, os.PathLike)):
            yield os.fspath(rule)
        elif hasattr(rule, "__iter__"):
            yield from _flatten(rule)
        else:
            raise WatcherConfigurationError(f"Whitelist rules must be strings or paths, got {rule!r}")


class Whitelist:
    """Ordered set of glob rules, resolved lazily into a set of trusted files.

    The resolved files are cached until `reset` is called, which the owning
    watcher does at the start of every report so that modules loaded since the
    previous cycle are taken into account.
    """

    def __init__(self, rules: Iterable[Any] = ()):
        self._rules: List[str] = []
        self._files: Optional[FrozenSet[str]] = None
        self.merge(rules)

    @property
    def rules(self) -> List[str]:
        return list(self._rules)

    def merge(self, *rules: Any) -> None:
        """Add rules; existing rules are never removed."""
        for rule in _flatten(rules):
            if rule not in self._rules:
                self._rules.append(rule)
        self._files = None

    def reset(self) -> None:
        self._files = None

    def files(self) -> FrozenSet[str]:
        if self._files is None:
            resolved = set()
            for rule in self._rules:
                try:
                    resolved.update(to_loaded_paths(rule))
                except (TypeError, ValueError) as e:
                    logger.warning(f"Whitelist rule {rule!r} could not be resolved and matches nothing: {e}")
            self._files = frozenset(resolved)
        return self._files

    def covers(self, call_site: CallSite) -> bool:
        """Whether `call_site` lies in one of the whitelisted files."""
        files = self.files()
        return bool(files) and normalize_path(call_site.filename) in files
