"""Utility functions for oci-fetch."""

from .digest import blob_path, calculate_digest, validate_digest

__all__ = ["blob_path", "calculate_digest", "validate_digest"]
