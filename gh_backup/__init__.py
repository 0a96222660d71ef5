"""Back up every repository of a GitHub organisation to local disk."""

__version__ = "0.1.0"
