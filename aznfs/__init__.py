"""Blob endpoint redirection helpers for NFS mounts."""

__version__ = "0.1.0"
