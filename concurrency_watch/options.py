"""Validated configuration of the thread-safety middleware."""

import re
from typing import Any, Dict, Iterable, List

from pydantic import BaseModel, Field, field_validator

from concurrency_watch.core.watcher import Watcher
from concurrency_watch.settings import Settings


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (str, bytes, re.Pattern)) or not hasattr(value, "__iter__"):
        return [value]
    return [item for item in value if item is not None]


class WatchOptions(BaseModel):
    """Whitelist and skip-path options of the middleware.

    `whitelist` maps a tracked type (the class itself or its name) to one or
    more glob rules. `skip_paths` holds regular expressions searched in the
    request path; a match means the request is served without watching.
    """

    whitelist: Dict[str, List[str]] = Field(default_factory=dict)
    skip_paths: List[re.Pattern] = Field(default_factory=list)

    @field_validator("whitelist", mode="before")
    @classmethod
    def validate_whitelist(cls, value):
        """Key rules by type name and accept a single rule in place of a list."""
        if value is None:
            return {}
        normalized: Dict[str, List[Any]] = {}
        for key, rules in dict(value).items():
            name = key.__name__ if isinstance(key, type) else str(key)
            normalized.setdefault(name, []).extend(_as_list(rules))
        return normalized

    @field_validator("skip_paths", mode="before")
    @classmethod
    def validate_skip_paths(cls, value):
        """Accept a single pattern in place of a list."""
        return _as_list(value)

    @classmethod
    def from_settings(cls, settings: Settings, type_names: Iterable[str]) -> "WatchOptions":
        """Build options from the environment for the given tracked type names."""
        whitelist = {name: settings.get_whitelist(name) for name in type_names}
        return cls(
            whitelist={name: rules for name, rules in whitelist.items() if rules},
            skip_paths=settings.get_skip_paths(),
        )

    def rules_for(self, watcher: Watcher) -> List[str]:
        return self.whitelist.get(watcher.name, [])

    def should_skip(self, path: str) -> bool:
        return any(pattern.search(path) for pattern in self.skip_paths)
