"""legacy_export -- zip-based package export with collision-free naming."""

__version__ = "0.1.0"
