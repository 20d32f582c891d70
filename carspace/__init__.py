"""Content-addressed image import and catalog publishing for carspace."""

__version__ = "0.1.0"
