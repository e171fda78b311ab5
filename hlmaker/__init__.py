"""Quote construction, order reconciliation, and Redis-coordinated configuration, position and symbol services."""

__version__ = "0.1.0"