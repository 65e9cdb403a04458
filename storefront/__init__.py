"""Session & cart synchronization layer for the storefront client."""

__version__ = "1.0.0"
