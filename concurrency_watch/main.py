import logging

from fastapi import FastAPI
from fastapi.responses import StreamingResponse

from concurrency_watch.containers import SharedDict, SharedList
from concurrency_watch.core.logging import setup_logging
from concurrency_watch.middleware import ThreadSafetyMiddleware
from concurrency_watch.settings import Settings

setup_logging()


logger = logging.getLogger(__name__)

# Process-wide state shared by every request without synchronization.
HITS: SharedDict = SharedDict()
EVENTS: SharedList = SharedList()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the demo application, watched unless disabled in the settings."""
    settings = settings or Settings()
    app = FastAPI(
        title="Concurrency Watch",
        description="Demo application showing potential concurrent container mutations.",
        version="0.1.0",
    )

    if settings.watch_enabled():
        app.add_middleware(ThreadSafetyMiddleware, settings=settings)
        logger.info("Thread-safety watching enabled.")
    else:
        logger.info("Thread-safety watching disabled.")

    @app.get("/health", tags=["General"], status_code=200)
    async def health_check():
        """Perform a basic health check.

        Returns:
            A dictionary indicating the application status.
        """
        return {"status": "ok"}

    @app.get("/hits/{name}")
    def count_hit(name: str):
        """Count a hit in a dict shared by all requests."""
        HITS[name] = HITS.get(name, 0) + 1
        return {"name": name, "hits": HITS[name]}

    @app.get("/events")
    async def stream_events():
        """Stream the event log, appending to it while the body is produced."""

        async def produce():
            EVENTS.append("streamed")
            for event in list(EVENTS):
                yield f"{event}\n"

        return StreamingResponse(produce(), media_type="text/plain")

    return app


app = create_app()
