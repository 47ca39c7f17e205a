"""paralumi — run Pulumi previews and applies across selected environments."""

__version__ = "0.1.0"
