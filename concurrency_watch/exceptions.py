class ConcurrencyWatchError(Exception):
    """Base exception for all concurrency watch errors."""

    pass


class WatchCycleActiveError(ConcurrencyWatchError):
    """Exception raised when a watch cycle is opened while another one is still active."""

    pass


class WatcherConfigurationError(ConcurrencyWatchError, ValueError):
    """Exception raised when a watcher, whitelist or skip-path configuration is invalid."""

    pass
