import os
from typing import List

from dotenv import load_dotenv

from concurrency_watch.exceptions import WatcherConfigurationError

# Load .env file variables into environment
load_dotenv(verbose=True)


def _split(value: str | None) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """Concurrency watch configuration loaded from environment variables."""

    # --- Watch Settings ---
    def watch_enabled(self) -> bool:
        """Returns True unless CONCURRENCY_WATCH_ENABLED is set to a false value."""
        return os.getenv("CONCURRENCY_WATCH_ENABLED", "true").lower() not in ("0", "false", "no", "off")

    def get_skip_paths(self) -> List[str]:
        """Returns the regular expressions of request paths that are never watched."""
        return _split(os.getenv("CONCURRENCY_WATCH_SKIP_PATHS"))

    def get_whitelist(self, type_name: str) -> List[str]:
        """Returns the whitelist glob rules for a tracked type, e.g. 'dict'."""
        return _split(os.getenv(f"CONCURRENCY_WATCH_WHITELIST_{type_name.upper()}"))

    # --- Logging Settings ---
    def get_log_level(self, default: str = "INFO") -> str:
        """Gets the configured log level, defaulting if not set."""
        return os.getenv("LOG_LEVEL", default).upper()

    # --- Demo Server Settings ---
    def get_app_host(self) -> str:
        return os.getenv("CONCURRENCY_WATCH_HOST", "127.0.0.1")

    def get_app_port(self) -> int:
        """Returns the port of the demo server as an integer."""
        try:
            return int(os.getenv("CONCURRENCY_WATCH_PORT", "8000"))
        except ValueError:
            raise WatcherConfigurationError("CONCURRENCY_WATCH_PORT environment variable must be an integer.")

    def get_app_reload(self) -> bool:
        return os.getenv("CONCURRENCY_WATCH_RELOAD", "false").lower() == "true"
