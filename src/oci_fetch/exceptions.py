"""Custom exceptions for oci-fetch."""


class OciFetchError(Exception):
    """Base exception for all oci-fetch errors."""

    pass


class UsageError(OciFetchError):
    """Raised when the command line is used incorrectly."""

    pass


class ReferenceParseError(OciFetchError):
    """Raised when an image reference cannot be parsed."""

    pass


class CredentialReadError(OciFetchError):
    """Raised when credentials cannot be read from the terminal."""

    pass


class FetchError(OciFetchError):
    """Base exception for failures while fetching from a registry."""

    pass


class RegistryConnectionError(FetchError):
    """Raised when unable to connect to the registry."""

    pass


class AuthenticationError(FetchError):
    """Raised when the registry rejects our credentials."""

    pass


class ManifestError(FetchError):
    """Raised when manifest operations fail."""

    pass


class BlobDownloadError(FetchError):
    """Raised when blob download fails."""

    pass


class FilesystemError(OciFetchError):
    """Raised when the destination file cannot be created."""

    pass


class ArchiveWriteError(OciFetchError):
    """Raised when the archive cannot be written."""

    pass
