"""Session and surface lifecycle harness for Conduit UI tests."""

__version__ = "1.0.0"
