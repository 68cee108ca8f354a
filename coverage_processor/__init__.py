"""Coverage processor: container coverage bundles to source-relative reports."""

__version__ = "0.1.0"
