"""
Main entry point for running the concurrency watch demo server.
"""

import uvicorn

from concurrency_watch.settings import Settings


def main():
    """Run the demo server."""
    settings = Settings()
    uvicorn.run(
        "concurrency_watch.main:app",
        host=settings.get_app_host(),
        port=settings.get_app_port(),
        reload=settings.get_app_reload(),
        log_level=settings.get_log_level().lower(),
    )


if __name__ == "__main__":
    main()
