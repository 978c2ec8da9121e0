"""TASKMILL — autonomous backlog maintenance for a single repository."""

from taskmill.identity import __codename__, __tagline__, __version__

__all__ = ["__codename__", "__tagline__", "__version__"]
