"""Exception types shared across the image watcher."""


class ImageWatcherError(Exception):
    """Base class for all image watcher errors."""


class ConfigError(ImageWatcherError):
    """Configuration is missing a required setting or holds an invalid value."""


class StorageConnectionError(ImageWatcherError):
    """The remote store could not be reached or answered with a server error."""


class AuthenticationDenied(ImageWatcherError):
    """The remote store explicitly refused the configured secret."""


class TooManySaveFailures(ImageWatcherError):
    """Consecutive save failures exceeded the configured limit."""
