"""smartwindow: realtime relay between a smart-window controller and its dashboards."""

from smartwindow.version import __version__

__all__ = ["__version__"]
