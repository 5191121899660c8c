"""confsync: reconcile generated proxy configuration between a database and the filesystem."""

__version__ = "0.1.0"
