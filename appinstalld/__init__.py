"""Install and remove workflow steps, path settings, JSON helpers and logging for an application installer daemon."""

__version__ = "1.0.0"