"""Focus Guardian desktop client: engine supervision and session control."""

__version__ = "1.0.0"
