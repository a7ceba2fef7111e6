"""Starlette middleware that watches every request for concurrent container mutations."""

import asyncio
import logging
from typing import Any, Iterable, Mapping, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from concurrency_watch.core.tester import Tester
from concurrency_watch.core.watcher import WATCHERS, Watcher
from concurrency_watch.options import WatchOptions
from concurrency_watch.settings import Settings

logger = logging.getLogger(__name__)


class ThreadSafetyMiddleware(BaseHTTPMiddleware):
    """Tries to discover potential thread-safety issues and prints them to stdout.

    Usage with FastAPI:
        app.add_middleware(
            ThreadSafetyMiddleware,
            whitelist={dict: ["mypackage/cache.py"], set: "mypackage/registry.py"},
            skip_paths=[r"^/static/"],  # keep static files snappy
        )

    Best added last so that it wraps every other middleware. Watch cycles are
    serialized: only one request is watched at a time in a process.
    When neither `whitelist` nor `skip_paths` is given, both are read from
    `Settings`.
    """

    def __init__(
        self,
        app: ASGIApp,
        whitelist: Optional[Mapping[Any, Any]] = None,
        skip_paths: Optional[Any] = None,
        watchers: Optional[Iterable[Watcher]] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(app)
        self._watchers = list(WATCHERS if watchers is None else watchers)
        if whitelist is None and skip_paths is None:
            self._options = WatchOptions.from_settings(settings or Settings(), [w.name for w in self._watchers])
        else:
            self._options = WatchOptions(whitelist=whitelist, skip_paths=skip_paths)

        known = {watcher.name for watcher in self._watchers}
        for name in self._options.whitelist:
            if name not in known:
                logger.warning(f"Ignoring whitelist for untracked type '{name}'.")
        for watcher in self._watchers:
            rules = self._options.rules_for(watcher)
            if rules:
                watcher.whitelist(rules)

        # Our own bookkeeping is not thread-safe, so cycles never overlap.
        self._lock = asyncio.Lock()

    async def dispatch(self, request: Request, call_next) -> Response:
        if self._options.should_skip(request.url.path):
            return await call_next(request)

        async with self._lock:
            # The scope belongs to this request alone. Servers pass a builtin dict, which is
            # never instrumented, so this only matters for scopes built from a dict subclass.
            with Tester([request.scope], watchers=self._watchers):
                response = await call_next(request)
                return await self._drain(response)

    async def _drain(self, response: Response) -> Response:
        """Consume a streamed body while still watching and return it as a fixed response."""
        body_iterator = getattr(response, "body_iterator", None)
        if body_iterator is None:
            return response

        chunks = []
        try:
            async for chunk in body_iterator:
                chunks.append(chunk if isinstance(chunk, bytes) else chunk.encode(response.charset))
        finally:
            aclose = getattr(body_iterator, "aclose", None)
            if aclose is not None:
                await aclose()

        body = b"".join(chunks)
        drained = Response(content=body, status_code=response.status_code, background=response.background)
        drained.raw_headers = [(key, value) for key, value in response.raw_headers if key.lower() != b"content-length"]
        if response.status_code >= 200 and response.status_code not in (204, 304):
            drained.raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))
        return drained
