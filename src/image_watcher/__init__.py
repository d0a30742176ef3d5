"""Image Watcher: periodic multi-camera snapshot compositor."""

__version__ = "1.0.0"
