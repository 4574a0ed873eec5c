"""Runtime entry points."""
