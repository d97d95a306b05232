"""Filesystem-backed object storage with flat CSV catalogs."""

__version__ = "1.0.0"
