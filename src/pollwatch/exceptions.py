"""Custom exceptions for the polling watcher."""


class WatcherError(Exception):
    """Base exception for all watcher errors."""
    pass


class InvalidConfiguration(WatcherError, ValueError):
    """Watcher options or the configuration file are missing or invalid."""
    pass


class FilesystemError(WatcherError, OSError):
    """The watched directory or one of its files could not be read."""
    pass


class WatcherRunningError(WatcherError, RuntimeError):
    """Operation is not allowed while the watch loop is running."""
    pass
