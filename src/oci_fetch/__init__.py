"""oci-fetch - fetch a container image from a registry into a .tar.gz file."""

__version__ = "0.1.0"

from .core.reference import ImageReference, parse_reference
from .core.registry_client import RegistryFetcher
from .core.types import Credentials, FetchOptions
from .exceptions import (
    ArchiveWriteError,
    AuthenticationError,
    BlobDownloadError,
    CredentialReadError,
    FetchError,
    FilesystemError,
    ManifestError,
    OciFetchError,
    ReferenceParseError,
    RegistryConnectionError,
    UsageError,
)
from .tar.archiver import archive_directory

__all__ = [
    "ImageReference",
    "parse_reference",
    "RegistryFetcher",
    "Credentials",
    "FetchOptions",
    "archive_directory",
    "OciFetchError",
    "UsageError",
    "ReferenceParseError",
    "CredentialReadError",
    "FetchError",
    "RegistryConnectionError",
    "AuthenticationError",
    "ManifestError",
    "BlobDownloadError",
    "FilesystemError",
    "ArchiveWriteError",
]
