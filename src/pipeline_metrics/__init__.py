"""Content pipeline metrics aggregated from Linear workspaces."""

__version__ = "0.1.0"
