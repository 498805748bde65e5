"""Custom exceptions for docker2aci."""


class Docker2ACIError(Exception):
    """Base exception for all conversion errors."""

    pass


class RegistryError(Docker2ACIError):
    """Raised when a registry request does not succeed.

    Carries the HTTP status (``None`` for transport failures) and the
    requested URL so callers can report exactly which call failed.
    """

    def __init__(self, message: str, status: int | None = None, url: str | None = None):
        super().__init__(message)
        self.status = status
        self.url = url

    @classmethod
    def from_status(cls, status: int, url: str) -> "RegistryError":
        return cls(f"HTTP code: {status}, URL: {url}", status=status, url=url)


class RegistryConnectionError(RegistryError):
    """Raised when unable to reach the registry at all."""

    pass


class ParseError(Docker2ACIError):
    """Raised when a registry response or input string cannot be parsed."""

    pass


class ImageReferenceError(ParseError):
    """Raised when an image reference string is unusable."""

    pass


class ManifestError(Docker2ACIError):
    """Raised when an ACI manifest cannot be synthesized."""

    pass


class FilesystemError(Docker2ACIError):
    """Raised on staging, extraction or archive build I/O failures."""

    pass


class LayoutError(FilesystemError):
    """Raised when a layer directory is not a valid ACI layout."""

    pass


class ExtractionError(FilesystemError):
    """Raised when a Docker layer blob cannot be unpacked."""

    pass


class StoreError(Docker2ACIError):
    """Raised when the content store rejects an archive."""

    pass


class UnsupportedEntryError(RuntimeError):
    """Raised for filesystem entries that cannot be represented in a tar header.

    This signals a bug or a corrupted staging tree rather than a user error,
    so it sits outside the Docker2ACIError hierarchy.
    """

    pass
